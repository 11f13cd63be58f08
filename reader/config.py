import os
from dataclasses import dataclass
from typing import Tuple

from dotenv import load_dotenv


load_dotenv()


SORTS = ("latest", "oldest", "random")
SKIP_POLICIES = ("emitted", "returned")


@dataclass(frozen=True)
class Settings:
    """Runtime configuration loaded from environment variables."""

    # Timeline paging
    page_limit: int = 32
    default_sort: str = "latest"
    # "emitted" advances skip by non-reply notes only; "returned" by raw page size
    skip_policy: str = "emitted"

    # Store / ingestion
    followed_actors: Tuple[str, ...] = ()
    http_timeout: float = 15.0
    outbox_page_limit: int = 2

    # Local routes
    fallback_icon: str = "./assets/profile.png"
    profile_route: str = "/profile.html"
    post_route: str = "/post.html"

    def __post_init__(self) -> None:
        if self.page_limit <= 0:
            raise RuntimeError(
                f"READER_PAGE_LIMIT must be a positive integer, got {self.page_limit!r}."
            )
        if self.default_sort not in SORTS:
            raise RuntimeError(
                f"READER_DEFAULT_SORT must be one of {', '.join(SORTS)}, "
                f"got {self.default_sort!r}."
            )
        if self.skip_policy not in SKIP_POLICIES:
            raise RuntimeError(
                f"READER_SKIP_POLICY must be one of {', '.join(SKIP_POLICIES)}, "
                f"got {self.skip_policy!r}."
            )

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables.

        All variables are optional:
        - READER_PAGE_LIMIT
        - READER_DEFAULT_SORT
        - READER_SKIP_POLICY
        - READER_FOLLOWED_ACTORS (comma separated actor URLs)
        - READER_HTTP_TIMEOUT
        - READER_OUTBOX_PAGE_LIMIT
        - READER_FALLBACK_ICON
        - READER_PROFILE_ROUTE
        - READER_POST_ROUTE
        """

        followed = os.getenv("READER_FOLLOWED_ACTORS", "")

        return cls(
            page_limit=_int_env("READER_PAGE_LIMIT", 32),
            default_sort=os.getenv("READER_DEFAULT_SORT", "latest"),
            skip_policy=os.getenv("READER_SKIP_POLICY", "emitted"),
            followed_actors=tuple(u.strip() for u in followed.split(",") if u.strip()),
            http_timeout=_float_env("READER_HTTP_TIMEOUT", 15.0),
            outbox_page_limit=_int_env("READER_OUTBOX_PAGE_LIMIT", 2),
            fallback_icon=os.getenv("READER_FALLBACK_ICON", "./assets/profile.png"),
            profile_route=os.getenv("READER_PROFILE_ROUTE", "/profile.html"),
            post_route=os.getenv("READER_POST_ROUTE", "/post.html"),
        )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}.") from None


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}.") from None
