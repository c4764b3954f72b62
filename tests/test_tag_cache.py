import threading

from know.enrichment import InMemoryArticleRepository, TagFrequencyCache


def _initialized_cache() -> TagFrequencyCache:
    cache = TagFrequencyCache()
    cache.initialize(InMemoryArticleRepository())
    return cache


def test_uninitialized_cache_ignores_writes_and_reads_empty():
    cache = TagFrequencyCache()
    cache.add_tags(["Python"])
    cache.update_tags([], ["Go"])
    assert not cache.initialized
    assert cache.get_popular_tags() == []
    assert cache.count("python") == 0


def test_initialize_counts_existing_articles_once():
    repo = InMemoryArticleRepository()
    a = repo.create_article("A", "a")
    b = repo.create_article("B", "b")
    c = repo.create_article("C", "c")
    repo.update_tags(a.id, ["Python", "Web"])
    repo.update_tags(b.id, ["python"])
    repo.update_tags(c.id, [])

    cache = TagFrequencyCache()
    cache.initialize(repo)
    cache.initialize(repo)

    assert cache.count("PYTHON") == 2
    assert cache.count("web") == 1
    assert cache.get_popular_tags() == ["Python", "Web"]


def test_tags_are_case_insensitive_and_keep_first_spelling():
    cache = _initialized_cache()
    cache.add_tags(["Machine Learning"])
    cache.add_tags(["machine learning"])
    cache.add_tags(["MACHINE LEARNING "])
    assert cache.count("machine learning") == 3
    assert cache.get_popular_tags() == ["Machine Learning"]


def test_counts_floor_at_zero_and_zero_counts_are_hidden():
    cache = _initialized_cache()
    cache.add_tags(["Go"])
    cache.remove_tags(["go"])
    cache.remove_tags(["Go"])
    cache.remove_tags(["Rust"])
    assert cache.count("go") == 0
    assert cache.count("rust") == 0
    assert cache.get_popular_tags() == []

    cache.add_tags(["Go"])
    assert cache.count("go") == 1


def test_update_applies_symmetric_difference():
    cache = _initialized_cache()
    cache.add_tags(["A", "B"])
    cache.update_tags(["A", "B"], ["b", "C"])
    assert cache.count("a") == 0
    assert cache.count("b") == 1
    assert cache.count("c") == 1


def test_popular_tags_order_by_count_then_name():
    cache = _initialized_cache()
    cache.add_tags(["Zeta", "Alpha", "Beta"])
    cache.add_tags(["Beta"])
    cache.add_tags(["Zeta"])
    assert cache.get_popular_tags() == ["Beta", "Zeta", "Alpha"]


def test_clear_keeps_cache_usable():
    cache = _initialized_cache()
    cache.add_tags(["Python"])
    cache.clear()
    assert cache.initialized
    assert cache.get_popular_tags() == []
    cache.add_tags(["Python"])
    assert cache.get_popular_tags() == ["Python"]


def test_concurrent_updates_do_not_lose_counts():
    cache = _initialized_cache()

    def worker():
        for _ in range(1000):
            cache.add_tags(["Shared", "Other"])
        for _ in range(500):
            cache.remove_tags(["Other"])

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert cache.count("shared") == 8000
    assert cache.count("other") == 4000


def test_case_variants_in_one_call_share_a_key():
    cache = _initialized_cache()
    cache.add_tags(["Go", "go"])
    assert cache.count("GO") == 2
    assert cache.get_popular_tags() == ["Go"]
