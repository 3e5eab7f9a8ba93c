from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

ASYNC_SCHEME = "postgresql+asyncpg"


def normalize_database_url(url: str) -> str:
    """Coerce a Postgres URL onto the asyncpg driver.

    Hosted Postgres providers hand out ``postgres://`` URLs with libpq-style
    ``sslmode``; asyncpg only understands ``ssl``.
    """
    url = (url or "").strip()
    if not url:
        return url

    parts = urlsplit(url)
    scheme = parts.scheme

    if scheme in {"postgres", "postgresql", "postgresql+psycopg", "postgresql+psycopg2"}:
        scheme = ASYNC_SCHEME

    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    sslmode = query.pop("sslmode", None)
    ssl_val = query.get("ssl")
    if ssl_val is not None:
        normalized = ssl_val.lower().strip()
        if normalized in {"1", "true", "yes", "on"}:
            query["ssl"] = "require"
        elif normalized in {"0", "false", "no", "off"}:
            query["ssl"] = "disable"
    elif sslmode is not None:
        query["ssl"] = sslmode.lower().strip()

    new_query = urlencode(query, doseq=True)
    return urlunsplit((scheme, parts.netloc, parts.path, new_query, parts.fragment))
