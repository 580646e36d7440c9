"""SearchService: structural filters, FTS, lineage mode, vector phases, chat."""

import pytest

from catalog.parser.schema import SearchFilters
from catalog.search.sqlite_search import SearchService, build_fts_query, similarity_percent

ROOT = "/library"


@pytest.fixture
def service(db, make_provider):
    return SearchService(db, provider=make_provider(), root_path=ROOT)


def _ids(assets):
    return [a.id for a in assets]


# ── helpers ────────────────────────────────────────────────────────────

def test_build_fts_query():
    assert build_fts_query("red drag") == '"red"* "drag"*'
    assert build_fts_query('say "hi"') == '"say"* """hi"""*'
    assert build_fts_query("   ") is None
    assert build_fts_query(None) is None


def test_similarity_percent():
    assert similarity_percent(0.25) == 75.0
    assert similarity_percent(0.0) == 100.0
    assert similarity_percent(None) is None


# ── structural + FTS ───────────────────────────────────────────────────

def test_empty_query_lists_newest_first(service, add_asset):
    old = add_asset("old.png", created_at=1000)
    new = add_asset("new.png", created_at=3000)
    mid = add_asset("mid.png", created_at=2000)
    assert _ids(service.search("")) == [new.id, mid.id, old.id]


def test_prefix_match_with_and_semantics(service, add_asset):
    both = add_asset("a.png", prompt="red dragon")
    add_asset("b.png", prompt="blue dragon")
    add_asset("c.png", prompt="red fox")

    assert _ids(service.search("drag red")) == [both.id]
    assert len(service.search("drag")) == 2


def test_query_with_special_characters_does_not_raise(service, add_asset):
    hit = add_asset("x.png", prompt="red dragon")
    assert _ids(service.search('dragon" (red)')) == [hit.id]
    assert service.search('NOT-a:column') == []


def test_file_stem_and_comments_are_searchable(service, db, add_asset):
    stem = add_asset("renders/sunset_final.png")
    commented = add_asset("other.png")
    db.add_comment(commented.id, "approved by lighting", "bob")

    assert _ids(service.search("sunset")) == [stem.id]
    assert _ids(service.search("lighting")) == [commented.id]


def test_type_and_status_filters(service, db, add_asset):
    img = add_asset("i.png")
    vid = add_asset("v.mp4", type="video")
    db.update_status(vid.id, "approved")

    assert _ids(service.search("", {"type": "video"})) == [vid.id]
    assert _ids(service.search("", {"status": "approved"})) == [vid.id]
    assert len(service.search("", {"status": "all"})) == 2
    assert _ids(service.search("", {"statuses": ["unsorted", "pending"]})) == [img.id]


def test_tag_filter_is_any_of(service, db, add_asset):
    a = add_asset("a.png")
    b = add_asset("b.png")
    add_asset("c.png")
    t1 = db.create_tag("one")
    t2 = db.create_tag("two")
    db.add_tag_to_asset(a.id, t1.id)
    db.add_tag_to_asset(b.id, t2.id)

    found = service.search("", {"tagIds": [t1.id, t2.id]})
    assert sorted(_ids(found)) == sorted([a.id, b.id])
    assert {t.name for asset in found for t in asset.tags} == {"one", "two"}


def test_deleted_tag_no_longer_matches(service, db, add_asset):
    a = add_asset("a.png")
    tag = db.create_tag("gone")
    db.add_tag_to_asset(a.id, tag.id)
    db.delete_tag(tag.id)

    assert service.search("", {"tagIds": [tag.id]}) == []
    assert service.search("")[0].tags == []


def test_ids_filter(service, add_asset):
    a = add_asset("a.png")
    add_asset("b.png")
    assert _ids(service.search("", SearchFilters(ids=[a.id]))) == [a.id]
    assert service.search("", SearchFilters(ids=[])) == []


def test_date_range_is_inclusive(service, add_asset):
    add_asset("early.png", created_at=100)
    on_edge = add_asset("edge.png", created_at=200)
    inside = add_asset("inside.png", created_at=250)
    add_asset("late.png", created_at=400)

    found = service.search("", {"dateFrom": 200, "dateTo": 300})
    assert _ids(found) == [inside.id, on_edge.id]


def test_metadata_filters(service, add_asset):
    mine = add_asset("a.png", authorId="alice", project="alpha", shot="010")
    add_asset("b.png", authorId="bob", project="alpha")

    assert _ids(service.search("", {"authorId": "alice"})) == [mine.id]
    assert _ids(service.search("", {"project": "alpha", "shot": "010"})) == [mine.id]


def test_platform_url_is_substring_match(service, add_asset):
    hit = add_asset("a.png", platformUrl="https://gen.example.com/jobs/100%_done")
    add_asset("b.png", platformUrl="https://gen.example.com/jobs/1000")

    assert _ids(service.search("", {"platformUrl": "100%_"})) == [hit.id]
    assert len(service.search("", {"platformUrl": "gen.example"})) == 2


def test_root_scoping(db, make_provider, add_asset):
    here = add_asset("a.png")
    add_asset("a.png", root="/elsewhere")

    assert _ids(SearchService(db, make_provider(), root_path=ROOT).search("")) == [here.id]
    assert len(SearchService(db, make_provider()).search("")) == 2


# ── lineage mode ───────────────────────────────────────────────────────

def test_related_returns_source_then_direct_children(service, add_asset):
    asset1 = add_asset("asset1.png")
    asset2 = add_asset("asset2.png", inputs=[asset1.id])
    add_asset("asset3.png", inputs=[asset2.id])

    found = service.search("", {"relatedToAssetId": asset1.id})
    assert _ids(found) == [asset1.id, asset2.id]
    assert found[0].distance == 0.0


def test_source_is_pinned_even_when_filtered_out(service, add_asset):
    src = add_asset("src.png")
    child = add_asset("child.mp4", type="video", inputs=[src.id])

    found = service.search("", {"relatedToAssetId": src.id, "type": "video"})
    assert _ids(found) == [src.id, child.id]


def test_related_to_unknown_asset(service, add_asset):
    add_asset("a.png")
    assert service.search("", {"relatedToAssetId": "missing"}) == []


def test_lineage_walks_both_directions(service, add_asset):
    grand = add_asset("g.png")
    parent = add_asset("p.png", inputs=[grand.id])
    child = add_asset("c.png", inputs=[parent.id])
    add_asset("x.png")

    assert _ids(service.lineage(parent.id)) == [parent.id, grand.id, child.id]


# ── vector phases ──────────────────────────────────────────────────────

def test_search_survives_embedding_failure(db, make_provider, add_asset):
    hit = add_asset("dragon.png", embedding=[1, 0, 0, 0])
    service = SearchService(db, provider=make_provider(fail=True), root_path=ROOT)
    assert _ids(service.search("dragon")) == [hit.id]


def test_embed_returns_none_without_vector(service):
    assert service.embed("anything") is None


def test_hybrid_appends_vector_hits_after_text_hits(vec_db, make_provider, add_asset):
    text_hit = add_asset("sunset.png", embedding=[0, 1, 0, 0])
    vector_hit = add_asset("img_0042.png", embedding=[1, 0, 0, 0])
    provider = make_provider({"sunset": [1, 0, 0, 0]})
    service = SearchService(vec_db, provider=provider, root_path=ROOT)

    found = service.search("sunset")
    assert _ids(found) == [text_hit.id, vector_hit.id]
    assert found[0].distance is None
    assert found[1].distance == pytest.approx(0.0, abs=1e-5)


def test_hybrid_hits_must_pass_structural_filters(vec_db, make_provider, add_asset):
    add_asset("img_0042.png", embedding=[1, 0, 0, 0])
    service = SearchService(
        vec_db, provider=make_provider({"sunset": [1, 0, 0, 0]}), root_path=ROOT
    )
    assert service.search("sunset", {"type": "video"}) == []
    assert service.search("sunset", {"ids": []}) == []


def test_find_similar(vec_db, make_provider, add_asset):
    src = add_asset("src.png", embedding=[1, 0, 0, 0])
    near = add_asset("near.png", embedding=[0.9, 0.1, 0, 0])
    far = add_asset("far.png", embedding=[0, 1, 0, 0])
    add_asset("none.png")
    service = SearchService(vec_db, provider=make_provider(), root_path=ROOT)

    found = service.find_similar(src.id, limit=5)
    assert _ids(found) == [near.id, far.id]
    assert found[0].distance < found[1].distance
    assert service.find_similar("missing") == []


def test_semantic_related_mode(vec_db, make_provider, add_asset):
    src = add_asset("src.png", embedding=[1, 0, 0, 0])
    near = add_asset("near.png", embedding=[0.9, 0.1, 0, 0])
    far = add_asset("far.png", embedding=[0, 1, 0, 0])
    add_asset("plain.png")
    service = SearchService(vec_db, provider=make_provider(), root_path=ROOT)

    found = service.search("", {"relatedToAssetId": src.id, "semantic": True})
    assert _ids(found) == [src.id, near.id, far.id]
    assert found[0].distance == 0.0
    assert all(a.distance is not None for a in found)


def test_semantic_mode_without_source_embedding(db, make_provider, add_asset):
    src = add_asset("src.png")
    add_asset("other.png")
    service = SearchService(db, provider=make_provider(), root_path=ROOT)

    found = service.search("", {"relatedToAssetId": src.id, "semantic": True})
    assert _ids(found) == [src.id]


def test_find_similar_fills_limit_when_other_roots_are_closer(vec_db, make_provider, add_asset):
    src = add_asset("src.png", embedding=[1, 0, 0, 0])
    mine = add_asset("mine.png", embedding=[0, 1, 0, 0])
    for i in range(1, 13):
        add_asset(f"elsewhere_{i}.png", root="/other", embedding=[1, 0.01 * i, 0, 0])
    service = SearchService(vec_db, provider=make_provider(), root_path=ROOT)

    assert _ids(service.find_similar(src.id, limit=5)) == [mine.id]
    hits = vec_db.knn([1, 0, 0, 0], 3, root_path=ROOT, exclude_id=src.id)
    assert [h[0] for h in hits] == [mine.id]


def test_semantic_related_with_free_text(vec_db, make_provider, add_asset):
    src = add_asset("src.png", embedding=[1, 0, 0, 0])
    text_hit = add_asset("sunset_a.png", embedding=[0.9, 0.1, 0, 0])
    vector_hit = add_asset("img_1.png", embedding=[0.8, 0.2, 0, 0])
    outsider = add_asset("img_2.png", embedding=[0.5, 0, 0, 0.5])
    service = SearchService(
        vec_db, provider=make_provider({"sunset": [0, 0, 0, 1]}), root_path=ROOT
    )
    service.related_limit = 2

    found = service.search("sunset", {"relatedToAssetId": src.id, "semantic": True})
    assert _ids(found) == [src.id, text_hit.id, vector_hit.id]
    assert outsider.id not in _ids(found)
    assert all(a.distance is not None for a in found)
    assert found[1].distance < found[2].distance


def test_semantic_flag_without_source_keeps_vector_distances(vec_db, make_provider, add_asset):
    text_hit = add_asset("sunset.png", embedding=[0, 1, 0, 0])
    vector_hit = add_asset("img_0042.png", embedding=[1, 0, 0, 0])
    service = SearchService(
        vec_db, provider=make_provider({"sunset": [1, 0, 0, 0]}), root_path=ROOT
    )

    found = service.search("sunset", {"semantic": True})
    assert _ids(found) == [text_hit.id, vector_hit.id]
    assert found[1].distance == pytest.approx(0.0, abs=1e-5)


# ── chat ───────────────────────────────────────────────────────────────

def test_chat_returns_top_matches(service, add_asset):
    for i in range(6):
        add_asset(f"dragon_{i}.png")

    reply = service.handle_chat_message("dragon")
    assert reply["type"] == "search_results"
    assert reply["message"] == "I found 6 assets. Here are the top matches:"
    assert len(reply["assets"]) == 4


def test_chat_without_matches(service, add_asset):
    add_asset("cat.png")
    reply = service.handle_chat_message("zebra")
    assert reply == {"type": "chat", "message": 'I couldn\'t find any assets matching "zebra".'}


def test_chat_reports_vector_distances(vec_db, make_provider, add_asset):
    text_hit = add_asset("sunset.png", embedding=[0, 1, 0, 0])
    vector_hit = add_asset("img_0042.png", embedding=[1, 0, 0, 0])
    service = SearchService(
        vec_db, provider=make_provider({"sunset": [1, 0, 0, 0]}), root_path=ROOT
    )

    reply = service.handle_chat_message("sunset")
    assert _ids(reply["assets"]) == [text_hit.id, vector_hit.id]
    assert reply["assets"][1].distance == pytest.approx(0.0, abs=1e-5)
