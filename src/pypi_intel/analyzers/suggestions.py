"""Package-name suggestions for lookups that return 404."""

import re

# Popular PyPI packages used as typo-correction targets
POPULAR_PACKAGES: list[str] = [
    # Data Science / ML
    "numpy", "pandas", "scipy", "matplotlib", "scikit-learn",
    "tensorflow", "torch", "keras", "xgboost", "lightgbm",
    "seaborn", "plotly", "jupyter", "notebook", "ipython",
    "pillow", "opencv-python", "statsmodels", "transformers",
    # Web frameworks
    "django", "flask", "fastapi", "starlette", "tornado",
    "aiohttp", "httpx", "requests", "urllib3", "certifi",
    "jinja2", "werkzeug", "uvicorn", "gunicorn",
    # CLI / Utilities
    "click", "typer", "rich", "tqdm", "colorama",
    "pyyaml", "toml", "python-dotenv", "pydantic", "attrs",
    # Testing
    "pytest", "pytest-cov", "coverage", "mock", "responses",
    "hypothesis", "faker", "factory-boy", "tox", "nox",
    # Dev tools
    "black", "ruff", "mypy", "pylint", "flake8",
    "isort", "pre-commit", "setuptools", "wheel", "twine", "sphinx",
    # Database
    "sqlalchemy", "psycopg2", "psycopg2-binary", "pymysql", "redis", "pymongo",
    "alembic", "asyncpg", "peewee",
    # Cloud
    "boto3", "botocore", "google-cloud-storage", "paramiko",
    # Async
    "trio", "anyio", "uvloop", "celery",
    # Security
    "cryptography", "pyjwt", "bcrypt", "passlib",
    # Parsing / Serialization
    "beautifulsoup4", "lxml", "jsonschema", "marshmallow",
    "orjson", "ujson", "msgpack", "protobuf", "grpcio",
]

# Import names and common misspellings that map to a known distribution
PACKAGE_ALIASES: dict[str, str] = {
    "sklearn": "scikit-learn",
    "scikitlearn": "scikit-learn",
    "cv2": "opencv-python",
    "opencv": "opencv-python",
    "bs4": "beautifulsoup4",
    "beautifulsoup": "beautifulsoup4",
    "beautiful-soup": "beautifulsoup4",
    "pil": "pillow",
    "yaml": "pyyaml",
    "dotenv": "python-dotenv",
    "jwt": "pyjwt",
    "dateutil": "python-dateutil",
    "pytorch": "torch",
    "jinja": "jinja2",
    "psycopg": "psycopg2",
    "djago": "django",
    "djnago": "django",
    "flsk": "flask",
    "fastpi": "fastapi",
    "fast-api": "fastapi",
    "reqeusts": "requests",
    "reqests": "requests",
    "numy": "numpy",
    "nunpy": "numpy",
    "pands": "pandas",
    "tensor-flow": "tensorflow",
    "sqlalchmy": "sqlalchemy",
    "sql-alchemy": "sqlalchemy",
    "pytes": "pytest",
    "py-test": "pytest",
    "aio-http": "aiohttp",
    "flake-8": "flake8",
    "tqmd": "tqdm",
    "pydatic": "pydantic",
}


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance between two strings."""
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, 1):
        current = [i]
        for j, char_b in enumerate(b, 1):
            cost = 0 if char_a == char_b else 1
            current.append(
                min(
                    previous[j] + 1,  # deletion
                    current[j - 1] + 1,  # insertion
                    previous[j - 1] + cost,  # substitution
                )
            )
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Similarity in [0, 1] derived from the edit distance."""
    a, b = a.lower(), b.lower()
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1 - levenshtein_distance(a, b) / longest


def _normalize(name: str) -> str:
    return re.sub(r"[-_.]+", "-", name.strip()).lower()


def find_similar_packages(
    query: str,
    max_results: int = 5,
    threshold: float = 0.6,
    candidates: list[str] | None = None,
) -> list[str]:
    """Return popular package names that look like ``query``.

    An exact alias wins outright. Otherwise candidates are ranked by edit
    similarity; a candidate that starts with a query of three or more
    characters counts as a match as well. The query itself is never
    suggested.
    """
    normalized = _normalize(query)
    if not normalized:
        return []
    if normalized in PACKAGE_ALIASES and PACKAGE_ALIASES[normalized] != normalized:
        return [PACKAGE_ALIASES[normalized]]

    scored: list[tuple[float, str]] = []
    seen = set()
    for candidate in candidates or POPULAR_PACKAGES:
        if candidate in seen or candidate == normalized:
            continue
        seen.add(candidate)
        score = similarity(normalized, candidate)
        if len(normalized) >= 3 and candidate.startswith(normalized):
            score = max(score, threshold)
        if score >= threshold:
            scored.append((score, candidate))

    # Highest similarity first; ties keep the list order
    scored.sort(key=lambda item: -item[0])
    return [name for _, name in scored[:max_results]]


def get_package_suggestions(query: str, max_results: int = 5) -> list[str]:
    """Suggestions shown when ``query`` is not found on PyPI."""
    return find_similar_packages(query, max_results=max_results, threshold=0.5)


def is_likely_typo(query: str) -> bool:
    """True if ``query`` is unknown but very close to a popular package."""
    normalized = _normalize(query)
    if normalized in POPULAR_PACKAGES:
        return False
    if normalized in PACKAGE_ALIASES:
        return True
    return bool(find_similar_packages(normalized, max_results=1, threshold=0.7))
