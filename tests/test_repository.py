import pytest

from know.enrichment import InMemoryArticleRepository, SqlAlchemyArticleRepository


@pytest.fixture(params=["memory", "sqlalchemy"])
def any_repo(request, tmp_path):
    if request.param == "memory":
        return InMemoryArticleRepository()
    return SqlAlchemyArticleRepository(f"sqlite+pysqlite:///{tmp_path / 'repo.db'}")


def test_create_and_read(any_repo):
    article = any_repo.create_article("Title", "Body", category="notes")
    fetched = any_repo.get_article(article.id)
    assert fetched.title == "Title"
    assert fetched.category == "notes"
    assert fetched.tags is None
    assert fetched.summary is None
    assert not fetched.has_embedding
    assert any_repo.get_article(article.id + 100) is None


def test_list_is_newest_first(any_repo):
    first = any_repo.create_article("First", "a")
    second = any_repo.create_article("Second", "b")
    assert [a.id for a in any_repo.list_articles()] == [second.id, first.id]


def test_get_articles_skips_missing_ids(any_repo):
    a = any_repo.create_article("A", "a")
    b = any_repo.create_article("B", "b")
    found = any_repo.get_articles([a.id, b.id, 999])
    assert set(found) == {a.id, b.id}
    assert any_repo.get_articles([]) == {}


def test_empty_tags_are_distinct_from_untagged(any_repo):
    tagged = any_repo.create_article("A", "a")
    empty = any_repo.create_article("B", "b")
    any_repo.create_article("C", "c")

    assert any_repo.update_tags(tagged.id, ["Python"]) == []
    assert any_repo.update_tags(empty.id, []) == []

    assert any_repo.get_article(empty.id).tags == []
    assert list(any_repo.iter_tag_sets()) == [["Python"]]
    assert any_repo.update_tags(tagged.id, ["Go"]) == ["Python"]
    assert any_repo.update_tags(999, ["Go"]) is None


def test_update_content_resets_enrichment(any_repo):
    article = any_repo.create_article("Title", "Body")
    any_repo.update_tags(article.id, ["Python"])
    any_repo.update_summary(article.id, "Summary.")
    any_repo.set_has_embedding(article.id, True)

    updated, previous = any_repo.update_content(article.id, "New title", "New body")

    assert previous == ["Python"]
    assert updated.title == "New title"
    assert updated.tags is None
    assert updated.summary is None
    assert not updated.has_embedding
    assert any_repo.update_content(999, "x", "y") is None


def test_partial_updates_report_missing_articles(any_repo):
    assert any_repo.update_summary(999, "x") is False
    assert any_repo.set_has_embedding(999, True) is False
    assert any_repo.reset_tags(999) is None


def test_reset_tags_returns_what_it_cleared(any_repo):
    article = any_repo.create_article("Title", "Body")
    any_repo.update_tags(article.id, ["Python", "Go"])

    assert any_repo.reset_tags(article.id) == ["Python", "Go"]
    assert any_repo.get_article(article.id).tags is None
    assert any_repo.reset_tags(article.id) == []


def test_delete_and_delete_all(any_repo):
    a = any_repo.create_article("A", "a")
    any_repo.create_article("B", "b")
    any_repo.update_tags(a.id, ["Python"])

    removed = any_repo.delete_article(a.id)
    assert removed.tag_list == ["Python"]
    assert any_repo.delete_article(a.id) is None
    assert any_repo.delete_all() == 1
    assert any_repo.list_articles() == []
