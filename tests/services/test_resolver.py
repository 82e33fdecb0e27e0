import pytest

from rancherupgrader.errors import MalformedResponseError, NotFoundError
from rancherupgrader.services.resolver import EntityResolver


class DummyLogger:
    def __init__(self):
        self.warnings = []

    def warning(self, message, *args):
        self.warnings.append(message % args)


def _body(*names):
    return {"data": [{"name": name, "links": {"self": f"https://api/{name}"}} for name in names]}


def test_resolve_returns_single_exact_match():
    resolver = EntityResolver(logger=DummyLogger())

    entity = resolver.resolve(_body("staging", "prod"), "prod", kind="environment")

    assert entity.name == "prod"
    assert entity.link("self") == "https://api/prod"


def test_resolve_is_case_sensitive():
    resolver = EntityResolver(logger=DummyLogger())

    with pytest.raises(NotFoundError, match="environment 'Prod'"):
        resolver.resolve(_body("prod"), "Prod", kind="environment")


def test_resolve_without_filter_returns_everything():
    resolver = EntityResolver(logger=DummyLogger())

    entities = resolver.resolve(_body("api", "worker"), kind="services")

    assert [entity.name for entity in entities] == ["api", "worker"]


def test_resolve_without_filter_fails_on_empty_collection():
    resolver = EntityResolver(logger=DummyLogger())

    with pytest.raises(NotFoundError):
        resolver.resolve({"data": []}, kind="services")


@pytest.mark.parametrize("body", [{}, {"data": {"name": "prod"}}, [], None, {"data": ["prod"]}])
def test_resolve_rejects_malformed_bodies(body):
    resolver = EntityResolver(logger=DummyLogger())

    with pytest.raises(MalformedResponseError):
        resolver.resolve(body, "prod")


def test_resolve_uses_first_of_duplicate_names_and_warns():
    logger = DummyLogger()
    resolver = EntityResolver(logger=logger)
    body = {
        "data": [
            {"name": "web", "id": "1st"},
            {"name": "web", "id": "2nd"},
        ]
    }

    entity = resolver.resolve(body, "web", kind="stack")

    assert entity.data["id"] == "1st"
    assert logger.warnings and "2 stack entries" in logger.warnings[0]
