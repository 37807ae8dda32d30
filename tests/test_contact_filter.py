from chat_agent.contact_filter import ContactFilter

CONTACTS = ["+1555", "+1999", "+4470000", "", "console"]


def test_blocked_contact_is_rejected_even_when_allowed() -> None:
    for contact in CONTACTS:
        only_blocked = ContactFilter(blocked=[contact])
        both = ContactFilter(allowed=[contact], blocked=[contact])
        assert only_blocked.is_permitted(contact) is False
        assert both.is_permitted(contact) is False


def test_empty_allowlist_permits_everyone_not_blocked() -> None:
    contact_filter = ContactFilter(blocked=["+1999"])
    for contact in CONTACTS:
        assert contact_filter.is_permitted(contact) is (contact != "+1999")


def test_allowlist_restricts_to_its_members() -> None:
    contact_filter = ContactFilter(allowed=["+1555", "console"], blocked=["+1999"])
    assert contact_filter.is_permitted("+1555") is True
    assert contact_filter.is_permitted("console") is True
    assert contact_filter.is_permitted("+4470000") is False
    assert contact_filter.is_permitted("+1999") is False


def test_filter_is_idempotent() -> None:
    contact_filter = ContactFilter(allowed=["+1555"], blocked=["+1999"])
    for contact in CONTACTS:
        first = contact_filter.is_permitted(contact)
        assert all(contact_filter.is_permitted(contact) == first for _ in range(5))


def test_lists_are_frozen_copies() -> None:
    allowed = ["+1555"]
    contact_filter = ContactFilter(allowed=allowed)
    allowed.append("+1666")
    assert contact_filter.is_permitted("+1666") is False
    assert isinstance(contact_filter.allowed, frozenset)
