from a64modem.qcfg import EntryState, Qcfg


def test_new_entry_is_unknown():
    qcfg = Qcfg()
    entry = qcfg.add_entry("usbnet", "1")
    assert entry.state is EntryState.UNKNOWN
    assert qcfg.any_unknown_entry() is entry
    assert qcfg.any_mismatching_entry() is None


def test_entry_lookup():
    qcfg = Qcfg()
    entry = qcfg.add_entry("usbnet", "1")
    assert qcfg.entry("usbnet") is entry
    assert qcfg.entry("urc/ri/smsincoming") is None


def test_mismatching_entry():
    qcfg = Qcfg()
    entry = qcfg.add_entry("usbnet", "1")
    entry.state = EntryState.MISMATCH
    assert qcfg.any_mismatching_entry() is entry
    assert qcfg.any_unknown_entry() is None


def test_reboot_needed_only_after_modification():
    qcfg = Qcfg()
    entry = qcfg.add_entry("usbnet", "1")
    assert not qcfg.reboot_needed()
    entry.state = EntryState.CONFIRMED
    assert not qcfg.reboot_needed()
    entry.state = EntryState.MODIFIED
    assert qcfg.reboot_needed()


def test_no_reboot_while_other_entry_pending():
    qcfg = Qcfg()
    modified = qcfg.add_entry("usbnet", "1")
    pending = qcfg.add_entry("urc/ri/smsincoming", "pulse")
    modified.state = EntryState.MODIFIED
    pending.state = EntryState.MISMATCH
    assert not qcfg.reboot_needed()
    pending.state = EntryState.UNKNOWN
    assert not qcfg.reboot_needed()
    pending.state = EntryState.CONFIRMED
    assert qcfg.reboot_needed()


def test_invalidate_after_reboot():
    qcfg = Qcfg()
    first = qcfg.add_entry("usbnet", "1")
    second = qcfg.add_entry("urc/ri/smsincoming", "pulse")
    first.state = EntryState.MODIFIED
    second.state = EntryState.CONFIRMED
    qcfg.invalidate_after_reboot()
    assert [e.state for e in qcfg] == [EntryState.UNKNOWN, EntryState.UNKNOWN]
    assert len(qcfg) == 2


def test_empty_registry_needs_no_reboot():
    qcfg = Qcfg()
    assert not qcfg.reboot_needed()
    assert qcfg.any_unknown_entry() is None