"""
Tests for application configuration and the site registry.
"""

import pytest


class TestSettings:
    """Test the Settings configuration class."""

    def test_settings_defaults(self):
        """Test that settings have sensible defaults."""
        from api.config import Settings

        settings = Settings(_env_file=None)
        assert settings.api_port == 8000
        assert settings.fetch_backend == "zenrows"
        assert settings.source_deadline_seconds == 25.0
        assert settings.min_results_per_pass == 10
        assert settings.max_results_per_source == 100
        assert settings.dedup_title_similarity == 0.8
        assert settings.dedup_price_delta == 1000

    def test_settings_read_environment(self, monkeypatch):
        """Test that environment variables override defaults, case-insensitively."""
        from api.config import Settings

        monkeypatch.setenv("ZENROWS_API_KEY", "abc123")
        monkeypatch.setenv("min_results_per_pass", "5")
        settings = Settings(_env_file=None)
        assert settings.zenrows_api_key == "abc123"
        assert settings.min_results_per_pass == 5

    def test_settings_log_paths(self):
        """Test that log paths are valid."""
        from api.config import settings

        assert settings.log_dir is not None
        assert settings.log_file.name == "backend.log"

    def test_settings_database_url(self):
        from api.config import Settings

        assert "listings.db" in Settings(_env_file=None).database_url


class TestSiteRegistry:
    """Test site configurations and helpers."""

    def test_get_site_config(self):
        from scrapers.config import get_site_config

        config = get_site_config('leboncoin')
        assert config.name == 'LeBonCoin'
        assert config.short_name == 'lbc'
        assert config.render_wait_selector == 'a[data-qa-id="aditem_container"]'
        assert config.render_wait_ms == 5000

    def test_unknown_site_lists_valid_keys(self):
        from scrapers.config import get_site_config

        with pytest.raises(ValueError) as exc:
            get_site_config('nope')
        assert 'leboncoin' in str(exc.value)
        assert 'lacentrale' in str(exc.value)

    def test_enabled_sites(self):
        from scrapers.config import get_enabled_sites

        enabled = get_enabled_sites()
        assert set(enabled) == {'leboncoin', 'lacentrale'}

    def test_reputation_lookup(self):
        from scrapers.base import ReputationTier
        from scrapers.config import reputation_for

        assert reputation_for('LaCentrale') == ReputationTier.PROFESSIONAL
        assert reputation_for('AutoScout24') == ReputationTier.PROFESSIONAL
        assert reputation_for('LeBonCoin') == ReputationTier.GENERALIST
        assert reputation_for('paruvendu.fr') == ReputationTier.GENERALIST
        assert reputation_for('SomeDealer') == ReputationTier.OTHER
        assert reputation_for('') == ReputationTier.OTHER

    def test_site_summary(self):
        from scrapers.config import get_site_summary, list_sites

        summary = get_site_summary()
        assert len(summary) == len(list_sites())
        lacentrale = next(s for s in summary if s['key'] == 'lacentrale')
        assert lacentrale['reputation'] == 'professional'
        assert lacentrale['type'] == 'javascript'


class TestLoggingSetup:
    """Test the log formatters."""

    def test_color_strip_formatter(self):
        import logging
        from api.logging_setup import ColorStripFormatter
        from scrapers.base import Colors

        formatter = ColorStripFormatter('%(message)s')
        record = logging.LogRecord('scraper.lbc', logging.INFO, __file__, 1, Colors.green('ok'), None, None)
        assert formatter.format(record) == 'ok'
