"""
Site configurations for the vehicle listing sources.

Each site has a SiteConfig that defines:
- Search and base URLs
- Scraper type (static, javascript, stealth)
- Reputation tier used by relevance scoring
- Rendered-fetch wait settings
"""

from .base import SiteConfig, ScraperType, ReputationTier


# ============================================================
# SOURCE REPUTATION
# Points awarded by relevance scoring, by tier
# ============================================================
REPUTATION_POINTS = {
    ReputationTier.PROFESSIONAL: 10,
    ReputationTier.GENERALIST: 7,
    ReputationTier.OTHER: 5,
}

# Matched as substrings of the lowercased source tag
REPUTATION_KEYWORDS = {
    ReputationTier.PROFESSIONAL: ('lacentrale', 'autoscout'),
    ReputationTier.GENERALIST: ('leboncoin', 'paruvendu'),
}


# ============================================================
# SITE CONFIGURATIONS
# ============================================================

SITES = {
    # ========== IMPLEMENTED (2 sites) ==========

    'leboncoin': SiteConfig(
        name='LeBonCoin',
        short_name='lbc',
        search_url='https://www.leboncoin.fr/recherche',
        base_url='https://www.leboncoin.fr',
        scraper_type=ScraperType.STEALTH,
        reputation=ReputationTier.GENERALIST,
        render_wait_ms=5000,
        render_wait_selector='a[data-qa-id="aditem_container"]',
        enabled=True,
    ),

    'lacentrale': SiteConfig(
        name='LaCentrale',
        short_name='lacentrale',
        search_url='https://www.lacentrale.fr/listing',
        base_url='https://www.lacentrale.fr',
        scraper_type=ScraperType.JAVASCRIPT,
        reputation=ReputationTier.PROFESSIONAL,
        render_wait_ms=3000,
        enabled=True,
    ),

    # ========== NOT YET IMPLEMENTED ==========

    'paruvendu': SiteConfig(
        name='ParuVendu',
        short_name='paruvendu',
        search_url='https://www.paruvendu.fr/a/voiture-occasion/',
        base_url='https://www.paruvendu.fr',
        scraper_type=ScraperType.STATIC,
        reputation=ReputationTier.GENERALIST,
        enabled=False,
    ),

    'autoscout24': SiteConfig(
        name='AutoScout24',
        short_name='autoscout24',
        search_url='https://www.autoscout24.fr/lst/',
        base_url='https://www.autoscout24.fr',
        scraper_type=ScraperType.JAVASCRIPT,
        reputation=ReputationTier.PROFESSIONAL,
        enabled=False,
    ),

    'leparking': SiteConfig(
        name='LeParking',
        short_name='leparking',
        search_url='https://www.leparking.fr/voiture/',
        base_url='https://www.leparking.fr',
        scraper_type=ScraperType.STATIC,
        enabled=False,
    ),

    'procarlease': SiteConfig(
        name='ProCarLease',
        short_name='procarlease',
        search_url='https://procarlease.com/fr/vehicules',
        base_url='https://procarlease.com',
        scraper_type=ScraperType.STATIC,
        enabled=False,
    ),

    'transakauto': SiteConfig(
        name='TransakAuto',
        short_name='transakauto',
        search_url='https://annonces.transakauto.com/',
        base_url='https://annonces.transakauto.com',
        scraper_type=ScraperType.STATIC,
        enabled=False,
    ),
}


# ============================================================
# HELPER FUNCTIONS
# ============================================================

def get_site_config(site_key: str) -> SiteConfig:
    """
    Get configuration for a site by its key.

    Args:
        site_key: Site identifier (e.g., 'leboncoin', 'lacentrale')

    Returns:
        SiteConfig for the site

    Raises:
        ValueError: If site_key is not found
    """
    if site_key not in SITES:
        valid_keys = ', '.join(sorted(SITES.keys()))
        raise ValueError(f"Unknown site: '{site_key}'. Valid sites: {valid_keys}")
    return SITES[site_key]


def get_enabled_sites() -> dict:
    """Get all enabled sites."""
    return {k: v for k, v in SITES.items() if v.enabled}


def list_sites() -> list:
    """List all site keys."""
    return list(SITES.keys())


def reputation_for(source: str) -> ReputationTier:
    """Reputation tier of a source tag, known site or not."""
    if not source:
        return ReputationTier.OTHER
    lowered = source.lower()
    for config in SITES.values():
        if config.name.lower() == lowered:
            return config.reputation
    for tier, keywords in REPUTATION_KEYWORDS.items():
        if any(keyword in lowered for keyword in keywords):
            return tier
    return ReputationTier.OTHER


def get_site_summary() -> list:
    """Get a summary of all sites for display."""
    summary = []
    for key, config in SITES.items():
        summary.append({
            'key': key,
            'name': config.name,
            'short_name': config.short_name,
            'type': config.scraper_type.value,
            'reputation': config.reputation.value,
            'enabled': config.enabled,
            'url': config.search_url,
        })
    return summary
