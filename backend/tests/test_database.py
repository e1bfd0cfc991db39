"""
Tests for listing persistence.
"""

from dataclasses import replace

from api.database import ListingRecord, save_listings, query_listings
from scoring.fraud import FraudFlagType, FraudRedFlag, Severity


class TestSaveListings:
    """Test upsert by (source, external_id)."""

    def test_insert(self, db_session, sample_listings):
        counts = save_listings(db_session, sample_listings)

        assert counts == {'new': 3, 'updated': 0}
        assert db_session.query(ListingRecord).count() == 3

    def test_research_updates_in_place(self, db_session, sample_listings):
        save_listings(db_session, sample_listings)
        changed = replace(sample_listings[0], price=11000, relevance_score=80)

        counts = save_listings(db_session, [changed])

        assert counts == {'new': 0, 'updated': 1}
        assert db_session.query(ListingRecord).count() == 3
        record = db_session.query(ListingRecord).filter_by(listing_id='lbc_1').one()
        assert record.price == 11000
        assert record.relevance_score == 80

    def test_same_external_id_other_source(self, db_session, sample_listings):
        save_listings(db_session, sample_listings)
        other = replace(sample_listings[0], id='lacentrale_1', source='LaCentrale')

        counts = save_listings(db_session, [other])

        assert counts == {'new': 1, 'updated': 0}

    def test_red_flags_round_trip(self, db_session, sample_listings):
        flag = FraudRedFlag(
            type=FraudFlagType.PRICE_TOO_LOW,
            severity=Severity.CRITICAL,
            title='Prix anormalement bas',
            description='Prix très inférieur au marché',
        )
        listing = sample_listings[0].with_scores(relevance_score=60, fraud_score=40,
                                                 risk_level='medium', red_flags=[flag])
        save_listings(db_session, [listing])

        data = db_session.query(ListingRecord).one().to_dict()

        assert data['id'] == 'lbc_1'
        assert data['risk_level'] == 'medium'
        assert data['red_flags'][0]['type'] == 'price_too_low'


class TestQueryListings:

    def _seed(self, db_session, sample_listings):
        scored = [
            sample_listings[0].with_scores(relevance_score=70, fraud_score=10, risk_level='low', red_flags=[]),
            sample_listings[1].with_scores(relevance_score=85, fraud_score=0, risk_level='low', red_flags=[]),
            sample_listings[2].with_scores(relevance_score=70, fraud_score=0, risk_level='low', red_flags=[]),
        ]
        save_listings(db_session, scored)

    def test_ordering(self, db_session, sample_listings):
        self._seed(db_session, sample_listings)
        ids = [r.listing_id for r in query_listings(db_session)]
        assert ids == ['lacentrale_2', 'lbc_3', 'lbc_1']

    def test_filters(self, db_session, sample_listings):
        self._seed(db_session, sample_listings)
        assert [r.listing_id for r in query_listings(db_session, source='LaCentrale')] == ['lacentrale_2']
        assert len(query_listings(db_session, min_relevance=71)) == 1
        assert len(query_listings(db_session, limit=2)) == 2
