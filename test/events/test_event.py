from hypothesis import given
from events.strategies import event
from chainsync.events import Event


@given(event())
def test_event_rows(event: Event):
    assert Event.from_row(event.to_row()) == event


@given(event())
def test_event_to_from_dict(event: Event):
    assert Event.from_dict(event.to_dict()) == event


def test_event_normalizes_addresses():
    e = Event(
        contract_address="0x7B79995E5F793A07BC00C21412E50ECAE098E7F9",
        event_name="Transfer",
        block_number=1,
        transaction_hash="0xABCD",
        log_index=0,
        block_hash="0xEF01",
        timestamp=1_600_000_000,
        sender_address="0x5777D92F208679DB4B9778590FA3CAB3AC9E2168",
        recipient_address=None,
        value=2**255,
        raw_args={"value": 2**255},
    )
    assert e.contract_address == "0x7b79995e5f793a07bc00c21412e50ecae098e7f9"
    assert e.key == ("0xabcd", 0)
    assert e.sender_address == "0x5777d92f208679db4b9778590fa3cab3ac9e2168"
    # uint256 values survive the text column
    assert e.to_row()[9] == str(2**255)
    assert Event.from_row(e.to_row()).value == 2**255
