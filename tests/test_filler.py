import asyncio

import pytest

from nexus_reader.filler import FillState, TranslationCache, TranslationCacheFiller
from nexus_reader.models import Item, RankedItem
from nexus_reader.ranking import with_score

from conftest import FakeTranslator, make_item

DEBOUNCE = 0.05


def _filler(translator, **kwargs):
    kwargs.setdefault("debounce", DEBOUNCE)
    return TranslationCacheFiller(translator, **kwargs)


def test_cache_resolve_prefers_translations():
    cache = TranslationCache()
    original = [make_item("1"), make_item("2")]
    cache.update({"1": make_item("1", title="translated")})

    resolved = cache.resolve(original)

    assert resolved[0].title == "translated"
    assert resolved[1] is original[1]
    assert "1" in cache and len(cache) == 1


def test_cache_resolve_keeps_score_of_ranked_display_item():
    cache = TranslationCache()
    cache.update({"1": with_score(make_item("1", title="translated"), 0.9)})

    plain = cache.resolve([make_item("1")])
    ranked = cache.resolve([with_score(make_item("1"), 0.25)])

    assert type(cache.get("1")) is Item
    assert type(plain[0]) is Item
    assert plain[0].title == "translated"
    assert isinstance(ranked[0], RankedItem)
    assert ranked[0].title == "translated"
    assert ranked[0].score == 0.25


def test_rapid_changes_coalesce_into_one_pass():
    async def scenario():
        translator = FakeTranslator()
        filler = _filler(translator)
        items = [make_item(str(i)) for i in range(3)]

        filler.notify(items[:1], "zh")
        await asyncio.sleep(DEBOUNCE / 5)
        filler.notify(items[:2], "zh")
        await asyncio.sleep(DEBOUNCE / 5)
        filler.notify(items, "zh")
        assert filler.state == FillState.SCHEDULED

        await filler.wait_idle()
        return filler, translator, items

    filler, translator, items = asyncio.run(scenario())

    assert filler.passes == 1
    assert translator.batches == [["0", "1", "2"]]
    assert [item.title for item in filler.resolve(items, "zh")] == [
        "[zh] Title 0",
        "[zh] Title 1",
        "[zh] Title 2",
    ]


def test_batches_are_sequential_and_in_display_order():
    async def scenario():
        translator = FakeTranslator()
        filler = _filler(translator, batch_size=10)
        items = [make_item(str(i)) for i in range(25)]
        filler.notify(items, "zh")
        await filler.wait_idle()
        return translator

    translator = asyncio.run(scenario())

    assert [len(batch) for batch in translator.batches] == [10, 10, 5]
    assert translator.batches[0][0] == "0"
    assert translator.batches[2][-1] == "24"


def test_results_become_visible_batch_by_batch():
    async def scenario():
        translator = FakeTranslator(delay=0.05)
        filler = _filler(translator, batch_size=2)
        items = [make_item(str(i)) for i in range(4)]
        filler.notify(items, "zh")

        while len(translator.batches) < 2:
            await asyncio.sleep(0.005)
        partial = filler.resolve(items, "zh")
        translating = filler.is_translating
        await filler.wait_idle()
        return partial, translating, filler.is_translating

    partial, translating_mid, translating_end = asyncio.run(scenario())

    assert [item.title.startswith("[zh]") for item in partial] == [
        True,
        True,
        False,
        False,
    ]
    assert translating_mid is True
    assert translating_end is False


def test_no_provider_call_when_everything_is_cached():
    async def scenario():
        translator = FakeTranslator()
        filler = _filler(translator)
        items = [make_item("1")]
        filler.notify(items, "zh")
        await filler.wait_idle()
        filler.notify(items, "zh")
        await filler.wait_idle()
        return filler, translator

    filler, translator = asyncio.run(scenario())

    assert len(translator.batches) == 1
    assert filler.passes == 1
    assert filler.state == FillState.IDLE


def test_default_locale_bypasses_cache_and_cancels_timer():
    async def scenario():
        translator = FakeTranslator()
        filler = _filler(translator)
        items = [make_item("1")]
        filler.notify(items, "zh")
        filler.notify(items, "en")
        await asyncio.sleep(DEBOUNCE * 2)
        return filler, translator, items

    filler, translator, items = asyncio.run(scenario())

    assert translator.batches == []
    assert filler.state == FillState.IDLE
    assert filler.resolve(items, "en") == items


def test_failed_batch_is_retried_on_next_pass():
    async def scenario():
        translator = FakeTranslator(fail_batches={0})
        filler = _filler(translator)
        items = [make_item("1"), make_item("2")]
        filler.notify(items, "zh")
        await filler.wait_idle()
        first = filler.resolve(items, "zh")
        filler.notify(items, "zh")
        await filler.wait_idle()
        return first, filler.resolve(items, "zh"), translator

    first, second, translator = asyncio.run(scenario())

    assert [item.title for item in first] == ["Title 1", "Title 2"]
    assert [item.title for item in second] == ["[zh] Title 1", "[zh] Title 2"]
    assert translator.batches == [["1", "2"], ["1", "2"]]


def test_change_during_fill_schedules_follow_up_pass():
    async def scenario():
        translator = FakeTranslator(delay=DEBOUNCE * 3)
        filler = _filler(translator)
        first = [make_item("1")]
        filler.notify(first, "zh")

        while not translator.batches:
            await asyncio.sleep(0.005)
        assert filler.state == FillState.FILLING

        second = [make_item("1"), make_item("2")]
        filler.notify(second, "zh")
        await filler.wait_idle()
        return filler, translator, second

    filler, translator, second = asyncio.run(scenario())

    assert translator.batches == [["1"], ["2"]]
    assert filler.passes == 2
    assert all(item.title.startswith("[zh]") for item in filler.resolve(second, "zh"))


def test_passes_never_overlap():
    class CountingTranslator(FakeTranslator):
        def __init__(self):
            super().__init__(delay=DEBOUNCE * 2)
            self.active = 0
            self.peak = 0

        async def translate(self, batch, locale):
            self.active += 1
            self.peak = max(self.peak, self.active)
            try:
                return await super().translate(batch, locale)
            finally:
                self.active -= 1

    async def scenario():
        translator = CountingTranslator()
        filler = _filler(translator)
        for i in range(5):
            filler.notify([make_item(str(j)) for j in range(i + 1)], "zh")
            await asyncio.sleep(DEBOUNCE * 1.5)
        await filler.wait_idle()
        return translator

    translator = asyncio.run(scenario())

    assert translator.peak == 1
    translated = {item_id for batch in translator.batches for item_id in batch}
    assert translated == {"0", "1", "2", "3", "4"}


def test_caches_are_kept_per_locale():
    async def scenario():
        translator = FakeTranslator()
        filler = _filler(translator)
        items = [make_item("1")]
        filler.notify(items, "zh")
        await filler.wait_idle()
        filler.notify(items, "ja")
        await filler.wait_idle()
        return filler, items

    filler, items = asyncio.run(scenario())

    assert filler.resolve(items, "zh")[0].title == "[zh] Title 1"
    assert filler.resolve(items, "ja")[0].title == "[ja] Title 1"


def test_without_translator_filler_stays_idle():
    async def scenario():
        filler = _filler(None)
        items = [make_item("1")]
        filler.notify(items, "zh")
        await filler.wait_idle()
        return filler, items

    filler, items = asyncio.run(scenario())

    assert filler.state == FillState.IDLE
    assert filler.resolve(items, "zh") == items


def test_close_waits_for_in_flight_pass():
    async def scenario():
        translator = FakeTranslator(delay=DEBOUNCE)
        filler = _filler(translator)
        items = [make_item("1")]
        filler.notify(items, "zh")
        while not translator.batches:
            await asyncio.sleep(0.005)
        await filler.close()
        return filler, items

    filler, items = asyncio.run(scenario())

    assert filler.resolve(items, "zh")[0].title == "[zh] Title 1"
    assert filler.state == FillState.IDLE


def test_batch_size_must_be_positive():
    with pytest.raises(ValueError):
        TranslationCacheFiller(None, batch_size=0)
