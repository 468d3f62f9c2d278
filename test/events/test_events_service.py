from chainsync.events import EventsRepo, EventsService
from events.strategies import ALICE, BOB, CONTRACT, make_event


def test_get_events_paginates(events_repo: EventsRepo, events_service: EventsService):
    events_repo.upsert([make_event(b, 0) for b in range(1, 26)])
    events_repo.commit()

    page = events_service.get_events(contract_address=CONTRACT, page=3, limit=10)
    assert page["pagination"] == {"page": 3, "limit": 10, "total": 25, "pages": 3}
    assert [e["blockNumber"] for e in page["events"]] == [5, 4, 3, 2, 1]
    assert page["events"][0]["value"] == "100"
    assert page["events"][0]["senderAddress"] == ALICE

    page = events_service.get_events(sender=BOB, page=0)
    assert page["events"] == []
    assert page["pagination"] == {"page": 1, "limit": 10, "total": 0, "pages": 0}


def test_get_events_filters_by_block_range(
    events_repo: EventsRepo, events_service: EventsService
):
    events_repo.upsert([make_event(b, 0) for b in range(1, 11)])
    page = events_service.get_events(
        from_block=3, to_block=5, sort_by="block_number", sort_order="asc"
    )
    assert [e["blockNumber"] for e in page["events"]] == [3, 4, 5]
    assert page["pagination"]["total"] == 3


def test_aggregate_volume(events_repo: EventsRepo, events_service: EventsService):
    events_repo.upsert([make_event(1, 0), make_event(2, 0)])
    assert events_service.aggregate_volume(CONTRACT) == [
        {
            "interval_start": "2020-09-13T00:00:00Z",
            "total_events": 2,
            "total_value": 200,
        }
    ]
