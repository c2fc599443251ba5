# tests/test_dedupe.py
from modules.job_ingest.lib.dedupe import dedupe
from modules.job_ingest.lib.models import ScrapedRecord


def _rec(ext_id, **kw):
    base = {
        "external_id": ext_id,
        "url": f"https://builtin.com/job/x/{ext_id}",
        "title": "Engineer",
        "company": "Acme",
        "location": "Remote",
        "source": "builtin.com",
    }
    base.update(kw)
    return ScrapedRecord(**base)


def test_last_occurrence_wins():
    first = _rec("a", salary=None)
    second = _rec("a", salary="$100K")
    out = dedupe([first, second])
    assert out == [second]
    assert out[0].salary == "$100K"


def test_order_follows_first_appearance():
    out = dedupe([_rec("a"), _rec("b"), _rec("a", title="Updated"), _rec("c")])
    assert [r.external_id for r in out] == ["a", "b", "c"]
    assert out[0].title == "Updated"


def test_empty_batch():
    assert dedupe([]) == []
