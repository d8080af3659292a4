"""AT-protocol modem driver, modem power supervision, PIO pin handling and SCP messaging for Allwinner A64 phones."""

__version__ = "0.1.0"