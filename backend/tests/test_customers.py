# Overview: Pytest coverage for customer delivery addresses.

import pytest

from pdv.errors import NotFound, ValidationError
from pdv.services import customer_service


class TestDeliveryAddresses:
    def test_new_default_replaces_old_default(self, db_session, customer, delivery_address):
        work = customer_service.add_delivery_address(
            customer.id, name="Trabalho", street="Av. Brasil", city="Campinas", is_default=True
        )
        db_session.refresh(delivery_address)

        assert work.is_default is True
        assert delivery_address.is_default is False
        assert [a.id for a in customer_service.list_delivery_addresses(customer.id)] == [work.id, delivery_address.id]

    def test_inactive_addresses_hidden(self, db_session, customer, delivery_address):
        delivery_address.is_active = False
        db_session.commit()

        assert customer_service.list_delivery_addresses(customer.id) == []
        assert len(customer_service.list_delivery_addresses(customer.id, include_inactive=True)) == 1

    def test_blank_street_rejected(self, db_session, customer):
        with pytest.raises(ValidationError):
            customer_service.add_delivery_address(customer.id, name="Casa", street="  ", city="Campinas")

    def test_unknown_field_rejected(self, db_session, customer):
        with pytest.raises(ValidationError):
            customer_service.add_delivery_address(customer.id, name="Casa", street="Rua A", city="X", country="BR")

    def test_unknown_customer(self, db_session):
        with pytest.raises(NotFound):
            customer_service.add_delivery_address(999999, name="Casa", street="Rua A", city="X")
