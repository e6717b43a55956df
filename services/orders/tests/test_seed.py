"""
Tests for demo fixture seeding.
"""
from ofi_orders.seed import FIXTURE_CUSTOMER, FIXTURE_TAILORS, seed_marketplace


class TestSeedMarketplace:
    """Tests for seed_marketplace()."""

    def test_seeds_tailors_designs_and_customer(self, storage):
        """Test that every fixture tailor gets its design."""
        assert seed_marketplace(storage) is True

        for fixture in FIXTURE_TAILORS:
            tailor = storage.get_tailor_by_email(fixture["tailor"]["email"])
            assert tailor is not None
            assert tailor.is_verified is True
            assert tailor.total_orders == 0
        assert storage.get_user_by_email(FIXTURE_CUSTOMER["email"]) is not None

    def test_seeding_twice_is_a_no_op(self, storage):
        """Test that restarts do not duplicate fixture rows."""
        seed_marketplace(storage)

        assert seed_marketplace(storage) is False
