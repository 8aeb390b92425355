import unittest

from flowcanvas.config_cache import ConfigCache, ConfigPanel
from flowcanvas.events import CanvasEvent, CanvasEventBus
from flowcanvas.forms import OptionResolver, UIOption
from flowcanvas.graph_store import GraphStore

from tests.factories import llm_schema, query_schema


class TestConfigCache(unittest.TestCase):
    def test_save_replaces_and_load_returns_copy(self):
        cache = ConfigCache()
        cache.save("n1", {"a": 1, "b": 2})
        cache.save("n1", {"a": 3})

        loaded = cache.load("n1")
        self.assertEqual(loaded, {"a": 3})
        loaded["a"] = 99
        self.assertEqual(cache.load("n1"), {"a": 3})

    def test_load_missing_is_none(self):
        self.assertIsNone(ConfigCache().load("nope"))

    def test_clear_and_seed(self):
        store = GraphStore()
        node = store.add_node(query_schema())
        store.update_parameters(node.id, {"query": "hello"})

        cache = ConfigCache()
        cache.save("stale", {"x": 1})
        cache.seed_from(store.nodes)

        self.assertNotIn("stale", cache)
        self.assertEqual(cache.load(node.id), {"query": "hello"})

        cache.clear()
        self.assertEqual(len(cache), 0)


class TestConfigPanel(unittest.TestCase):
    def setUp(self):
        self.bus = CanvasEventBus()
        self.store = GraphStore(event_bus=self.bus)
        self.cache = ConfigCache()
        resolver = OptionResolver()
        resolver.seed("models", "openai", [UIOption(value="gpt-4o"), UIOption(value="gpt-4o-mini")])
        self.panel = ConfigPanel(self.store, self.cache, resolver, self.bus)
        self.node = self.store.add_node(llm_schema())

    def test_open_uses_committed_parameters_without_cache_entry(self):
        form = self.panel.open(self.node.id)
        self.assertTrue(self.panel.is_open)
        self.assertEqual(form.values, {"temperature": 0.7, "max_tokens": 256, "stream": False})

    def test_save_commits_to_store_and_cache(self):
        self.panel.open(self.node.id)
        self.panel.set_value("service", "openai")
        self.panel.set_value("model", "gpt-4o")
        self.panel.set_value("max_tokens", "512")

        committed = self.panel.save()

        expected = {"service": "openai", "model": "gpt-4o", "temperature": 0.7, "max_tokens": 512, "stream": False}
        self.assertEqual(committed, expected)
        self.assertEqual(self.store.get_node(self.node.id).parameters, expected)
        self.assertEqual(self.cache.load(self.node.id), expected)
        self.assertFalse(self.panel.is_open)

    def test_deleted_node_entry_is_left_unreachable(self):
        old_id = self.node.id
        self.panel.open(old_id)
        self.panel.set_value("service", "openai")
        self.panel.save()

        self.store.delete_node(old_id)
        fresh = self.store.add_node(llm_schema())

        self.assertNotEqual(fresh.id, old_id)
        self.assertEqual(self.cache.load(old_id)["service"], "openai")
        self.assertIsNone(self.cache.load(fresh.id))
        form = self.panel.open(fresh.id)
        self.assertEqual(form.values, {"temperature": 0.7, "max_tokens": 256, "stream": False})

    def test_saved_values_survive_reopen(self):
        self.panel.open(self.node.id)
        self.panel.set_value("service", "openai")
        self.panel.save()

        # Committed parameters drift, the cache wins on reopen
        self.store.get_node(self.node.id).parameters = {}
        form = self.panel.open(self.node.id)
        self.assertEqual(form.values["service"], "openai")

    def test_close_discards_unsaved_edits(self):
        self.panel.open(self.node.id)
        self.panel.set_value("service", "anthropic")
        self.panel.close()

        self.assertNotIn("service", self.store.get_node(self.node.id).parameters)
        self.assertIsNone(self.cache.load(self.node.id))
        form = self.panel.open(self.node.id)
        self.assertNotIn("service", form.values)

    def test_open_absent_node(self):
        self.assertIsNone(self.panel.open("ghost"))
        self.assertFalse(self.panel.is_open)

    def test_deleting_open_node_closes_panel(self):
        closed = []
        self.bus.subscribe(CanvasEvent.PANEL_CLOSED, lambda e, p: closed.append(p["node_id"]))
        self.panel.open(self.node.id)

        self.store.delete_node(self.node.id)

        self.assertFalse(self.panel.is_open)
        self.assertEqual(closed, [self.node.id])
        self.assertIsNone(self.panel.save())

    def test_panels_do_not_share_caches(self):
        other_cache = ConfigCache()
        other = ConfigPanel(self.store, other_cache)
        other.open(self.node.id)
        other.set_value("service", "openai")
        other.save()

        self.assertIsNone(self.cache.load(self.node.id))
        self.assertEqual(other_cache.load(self.node.id)["service"], "openai")


if __name__ == '__main__':
    unittest.main()
