import pytest

from printflow.errors import VendorNotFound
from printflow.services.vendor_service import VendorService


async def test_vendors_start_open(db, users) -> None:
    service = VendorService(db)
    assert await service.get_status(users["vendor"].id) is True


async def test_toggle_is_persisted_and_broadcast(db, session_factory, users, broadcaster, events) -> None:
    await VendorService(db, broadcaster).set_status(users["vendor"].id, False)
    await broadcaster.drain()

    async with session_factory() as other:
        assert await VendorService(other).get_status(users["vendor"].id) is False
    [event] = events.of_type("service.availability_changed")
    assert event["payload"] == {"vendor_id": users["vendor"].id, "is_open": False}

    await VendorService(db, broadcaster).set_status(users["vendor"].id, True)
    assert await VendorService(db).is_open(users["vendor"].id) is True


async def test_students_are_not_vendors(db, users) -> None:
    with pytest.raises(VendorNotFound):
        await VendorService(db).set_status(users["student"].id, False)


async def test_list_vendors(db, users) -> None:
    service = VendorService(db)
    await service.set_status(users["other_vendor"].id, False)
    assert await service.list_vendors() == [
        {"id": users["other_vendor"].id, "name": "Annex Prints", "is_open": False},
        {"id": users["vendor"].id, "name": "Print Vendor", "is_open": True},
    ]
