from voiceorder.menu import MenuItem, MenuSnapshot


class TestMenuSnapshot:
    def test_unavailable_items_are_skipped(self, menu):
        assert len(menu) == 5
        assert menu.get("6") is None

    def test_ids_are_strings(self, menu):
        assert menu.get("1").name == "Butter Chicken"
        assert menu.resolves("2")
        assert not menu.resolves("99")

    def test_comma_separated_aliases(self, menu):
        assert menu.get("2").aliases == ("nan", "नान")

    def test_malformed_entries_are_skipped(self):
        snapshot = MenuSnapshot.from_payload([{"name": "No Id"}, {"id": 7, "name": ""}, "junk", {"id": 8, "name": "Lassi"}])
        assert [item.id for item in snapshot.items] == ["8"]

    def test_vocabulary_is_longest_first(self, menu):
        lengths = [len(tokens) for tokens, _, _ in menu.vocabulary]
        assert lengths == sorted(lengths, reverse=True)

    def test_terms_are_normalized(self):
        item = MenuItem(id="1", name="Crème Brûlée", aliases=("creme brulee",))
        assert item.terms == ("creme brulee",)

    def test_names_limit(self, menu):
        assert menu.names(2) == ["Butter Chicken", "Naan"]

    def test_empty_snapshot(self):
        assert len(MenuSnapshot()) == 0
        assert MenuSnapshot().names() == []
