# ABOUTME: Tests next-item selection by Fisher and KL information.
# ABOUTME: Covers used-item exclusion, tie-breaking on difficulty distance, and empty pools.

from src.common.schemas import ItemParameter
from src.irt.selection import rank_by_information, select_item_kl, select_next_item


def test_selects_item_closest_to_theta_for_equal_discrimination():
    pool = [ItemParameter(id=f"i{b}", a=1.0, b=float(b)) for b in (-2, -1, 0, 1, 2)]
    assert select_next_item(0.9, pool).id == "i1"


def test_prefers_higher_discrimination():
    pool = [ItemParameter(id="weak", a=0.5, b=0.0), ItemParameter(id="strong", a=2.0, b=0.3)]
    assert select_next_item(0.0, pool).id == "strong"


def test_skips_used_items():
    pool = [ItemParameter(id="a", a=1.0, b=0.0), ItemParameter(id="b", a=1.0, b=1.0)]
    assert select_next_item(0.0, pool, used={"a"}).id == "b"


def test_returns_none_when_pool_exhausted():
    pool = [ItemParameter(id="a", a=1.0, b=0.0)]
    assert select_next_item(0.0, pool, used=["a"]) is None
    assert select_item_kl(0.0, pool, used=["a"]) is None


def test_equal_information_ties_break_on_id():
    # symmetric around theta: identical information and identical |b - theta|
    pool = [ItemParameter(id="z", a=1.0, b=1.0), ItemParameter(id="m", a=1.0, b=-1.0)]
    assert select_next_item(0.0, pool).id == "m"


def test_kl_selection_agrees_on_clear_winner():
    pool = [ItemParameter(id="far", a=1.0, b=2.5), ItemParameter(id="near", a=1.5, b=0.1)]
    assert select_item_kl(0.0, pool).id == "near"


def test_rank_by_information_orders_most_informative_first():
    pool = [ItemParameter(id=f"i{b}", a=1.0, b=float(b)) for b in (-2, 0, 2)]
    ranked = rank_by_information(0.0, pool)
    assert ranked[0].id == "i0"
    assert {item.id for item in ranked[1:]} == {"i-2", "i2"}


def test_kl_window_comes_from_config(monkeypatch):
    from src.common.config import IrtConfig
    from src.irt import selection

    seen = []
    real = selection.kl_information

    def recording(theta, item, delta):
        seen.append(delta)
        return real(theta, item, delta)

    monkeypatch.setattr(selection, "kl_information", recording)
    pool = [ItemParameter(id="a", a=1.0, b=0.0), ItemParameter(id="b", a=1.2, b=0.5)]
    selection.select_item_kl(0.0, pool, config=IrtConfig(kl_delta=0.4))
    assert seen == [0.4, 0.4]
    seen.clear()
    selection.select_item_kl(0.0, pool, delta=0.25, config=IrtConfig(kl_delta=0.4))
    assert seen == [0.25, 0.25]
