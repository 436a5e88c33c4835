"""Configuration settings for Prospector."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Unified settings with YAML override support."""

    # API Keys (from environment)
    exa_api_key: str = field(default_factory=lambda: os.environ.get("EXA_API_KEY", ""))
    exa_base_url: str = field(
        default_factory=lambda: os.environ.get("EXA_BASE_URL", "https://api.exa.ai/websets/v0")
    )

    # Remote calls must finish well inside the poll tolerance
    request_timeout: float = 10.0

    # Webset cache
    cache_ttl: int = 60 * 60 * 2  # 2 hours
    cache_max_size: int = 50

    # Poll loop
    poll_interval: float = 0.5
    cli_poll_interval: float = 2.0
    max_polls: int = 600  # 5 minutes at 500ms
    max_consecutive_errors: int = 3
    items_page_size: int = 100

    # Provider limits
    max_criteria: int = 5
    max_enrichments: int = 10
    min_count: int = 1
    max_count: int = 1000

    # Preview searches
    preview_timeout: float = 60.0
    preview_poll_interval: float = 2.0

    # Quota
    skip_quota_check: bool = field(default_factory=lambda: _env_flag("SKIP_QUOTA_CHECK"))
    database_url: str = field(
        default_factory=lambda: os.environ.get("DATABASE_URL", "sqlite:///./prospector.db")
    )

    # Web
    allowed_origins: str = field(default_factory=lambda: os.environ.get("ALLOWED_ORIGINS", "*"))


def load_config(path: Optional[str] = None) -> Settings:
    """
    Load settings from YAML file with environment overrides.

    Priority: environment > config file > defaults

    Args:
        path: Path to YAML config file (optional)

    Returns:
        Settings instance with merged configuration
    """
    settings = Settings()

    if path:
        config_path = Path(path)
        if config_path.exists():
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}

            for key, value in data.items():
                if hasattr(settings, key):
                    setattr(settings, key, value)

    # Environment overrides (always win)
    if os.environ.get("EXA_API_KEY"):
        settings.exa_api_key = os.environ["EXA_API_KEY"]
    if os.environ.get("EXA_BASE_URL"):
        settings.exa_base_url = os.environ["EXA_BASE_URL"]
    if os.environ.get("DATABASE_URL"):
        settings.database_url = os.environ["DATABASE_URL"]
    if _env_flag("SKIP_QUOTA_CHECK"):
        settings.skip_quota_check = True

    return settings


# Criterion type -> (sort priority, expected success rate)
CRITERION_PRIORITIES = {
    "job_title": (90, 85),
    "company_type": (85, 70),
    "industry": (80, 75),
    "location": (75, 80),
    "technology": (70, 65),
    "activity": (60, 60),
    "other": (50, 60),
}
DEFAULT_CRITERION_PRIORITY = (55, 65)

CRITERION_TYPES = frozenset(CRITERION_PRIORITIES)
ENTITY_TYPES = frozenset({"person", "company"})

# Requested enrichment value -> wording used in the enrichment description
ENRICHMENT_LABELS = {
    "email": "email address",
    "linkedin": "LinkedIn profile URL",
    "phone": "phone number",
    "location": "location",
    "job_title": "job title",
    "company_info": "company name",
    "full_name": "full name",
}

# Remote webset statuses
RUNNING_STATUSES = frozenset({"running", "processing", "pending"})
SUCCESS_STATUSES = frozenset({"idle", "completed"})
FAILURE_STATUSES = frozenset({"failed"})
CANCELED_STATUSES = frozenset({"canceled", "cancelled"})

# Enrichment results that carry no information
EMPTY_RESULTS = frozenset({"", "null", "none", "undefined", "n/a"})

# Field keywords, checked in order. "company size" must precede "company",
# and "company" must precede "name" so "company name" lands on company.
FIELD_KEYWORDS = [
    ("email", ("email", "e-mail")),
    ("linkedin_url", ("linkedin",)),
    ("phone", ("phone", "mobile", "telephone")),
    ("job_title", ("job title", "job_title", "jobtitle", "title", "role", "position")),
    ("company_size", ("company size", "company_size", "companysize", "employee", "headcount", "size")),
    ("company", ("company", "organization", "organisation", "employer")),
    ("full_name", ("full name", "full_name", "fullname", "name")),
    ("location", ("location", "city", "country", "region")),
    ("industry", ("industry", "sector", "vertical")),
    ("website", ("website", "domain", "homepage", "url")),
]

PHONE_PATTERN = r"^\+?\d[\d\s().-]{7,}$"

# Bare domains ("acme.com") are stored as a website
DOMAIN_PATTERN = r"^[a-z0-9.-]+\.[a-z]{2,}$"

# Strings longer than this are never treated as a company name
COMPANY_NAME_MAX_LENGTH = 50

LOCATION_TOKENS = frozenset({
    "united states", "usa", "u.s.", "united kingdom", "uk", "england",
    "canada", "australia", "germany", "france", "spain", "italy",
    "netherlands", "ireland", "india", "singapore", "japan", "brazil",
    "mexico", "israel", "sweden", "switzerland",
    "new york", "san francisco", "los angeles", "chicago", "boston",
    "seattle", "austin", "denver", "miami", "atlanta", "london", "berlin",
    "paris", "toronto", "sydney", "melbourne", "remote",
    "bay area", "greater london", "silicon valley",
})

TITLE_KEYWORDS = (
    "director", "vp", "vice president", "head of", "manager", "chief",
    "founder", "cto", "ceo", "cfo", "coo", "cmo", "president",
)

PLACEHOLDER_NAME = "Profile Found"
UNKNOWN = "Unknown"
