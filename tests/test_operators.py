import pytest

from vacuum.core.errors import ConfigurationError
from vacuum.services import operators

from tests.conftest import new_address


class TestOperators:
    """Multi-operator registry: default flag, updates and removal rules."""

    def test_add_and_lookup(self, registry):
        treasury = new_address()
        op = operators.add_operator(registry, "alpha", "/keys/alpha.json", treasury)
        assert op.name == "alpha"
        assert op.is_default is False
        assert operators.get_operator(registry, op.id).treasury_address == treasury
        assert operators.get_operator_by_name(registry, "alpha").id == op.id
        assert operators.get_operator_by_name(registry, "missing") is None

    def test_duplicate_name_rejected(self, registry):
        operators.add_operator(registry, "alpha", "/keys/a.json", new_address())
        with pytest.raises(ValueError, match="already exists"):
            operators.add_operator(registry, "alpha", "/keys/b.json", new_address())

    def test_invalid_treasury_rejected(self, registry):
        with pytest.raises(ConfigurationError):
            operators.add_operator(registry, "alpha", "/keys/a.json", "not-a-key")

    def test_single_default(self, registry):
        first = operators.add_operator(registry, "alpha", "/keys/a.json", new_address(), set_default=True)
        second = operators.add_operator(registry, "beta", "/keys/b.json", new_address(), set_default=True)

        defaults = [op for op in operators.list_operators(registry) if op.is_default]
        assert [op.id for op in defaults] == [second.id]

        operators.set_default_operator(registry, first.id)
        defaults = [op for op in operators.list_operators(registry) if op.is_default]
        assert [op.id for op in defaults] == [first.id]
        assert operators.get_default_operator(registry).id == first.id

    def test_default_falls_back_to_oldest(self, registry):
        assert operators.get_default_operator(registry) is None
        oldest = operators.add_operator(registry, "alpha", "/keys/a.json", new_address())
        operators.add_operator(registry, "beta", "/keys/b.json", new_address())
        assert operators.get_default_operator(registry).id == oldest.id

    def test_update(self, registry):
        op = operators.add_operator(registry, "alpha", "/keys/a.json", new_address())
        treasury = new_address()
        updated = operators.update_operator(registry, op.id, name="gamma", treasury_address=treasury)
        assert updated.name == "gamma"
        assert updated.treasury_address == treasury
        assert updated.keypair_path == "/keys/a.json"

    def test_update_missing(self, registry):
        with pytest.raises(ValueError, match="not found"):
            operators.update_operator(registry, 999, name="x")

    def test_remove_blocked_by_tracked_accounts(self, registry):
        op = operators.add_operator(registry, "alpha", "/keys/a.json", new_address())
        registry.upsert_account(new_address(), operator_id=op.id)
        with pytest.raises(ValueError, match="1 accounts are tracked"):
            operators.remove_operator(registry, op.id)

    def test_remove(self, registry):
        op = operators.add_operator(registry, "alpha", "/keys/a.json", new_address())
        operators.remove_operator(registry, op.id)
        assert operators.get_operator(registry, op.id) is None
