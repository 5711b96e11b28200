from voiceorder.extraction import extract, parse_quantity
from voiceorder.session import Fulfillment
from voiceorder.states import Language


def _items(delta):
    return [(f.menu_item_id, f.quantity) for f in delta.fragments]


class TestQuantities:
    def test_digits_and_words(self):
        assert parse_quantity("3") == 3
        assert parse_quantity("three") == 3
        assert parse_quantity("dos") == 2
        assert parse_quantity("rendu") == 2
        assert parse_quantity("दो") == 2

    def test_romanized_hindi_needs_hindi(self):
        assert parse_quantity("do") is None
        assert parse_quantity("do", Language.HINDI) == 2

    def test_times_suffix(self):
        assert parse_quantity("2x") == 2

    def test_out_of_range(self):
        assert parse_quantity("0") is None
        assert parse_quantity("500") is None

    def test_not_a_number(self):
        assert parse_quantity("naan") is None


class TestItemMatching:
    def test_two_items_with_quantities(self, menu):
        delta = extract("I'd like to order 2 butter chicken and 3 naan", menu)
        assert _items(delta) == [("1", 2), ("2", 3)]
        assert delta.fragments[0].matched_alias == "butter chicken"

    def test_missing_quantity_defaults_to_one(self, menu):
        delta = extract("2 butter chicken, 3 naan, and a paneer tikka", menu)
        assert _items(delta) == [("1", 2), ("2", 3), ("3", 1)]

    def test_alias_resolves_to_menu_id(self, menu):
        delta = extract("one murgh makhani", menu)
        assert _items(delta) == [("1", 1)]
        assert delta.fragments[0].matched_alias == "murgh makhani"

    def test_plural(self, menu):
        assert _items(extract("four naans", menu)) == [("2", 4)]

    def test_filler_between_quantity_and_item(self, menu):
        assert _items(extract("two plates of biryani", menu)) == [("4", 2)]

    def test_longest_name_wins(self, menu):
        assert _items(extract("one chicken biryani", menu)) == [("4", 1)]

    def test_quantity_after_item(self, menu):
        assert _items(extract("biryani rendu", menu)) == [("4", 2)]

    def test_repeated_item_is_summed(self, menu):
        assert _items(extract("one naan and two more naan", menu)) == [("2", 3)]

    def test_devanagari_alias(self, menu):
        assert _items(extract("मुझे दो बटर चिकन चाहिए", menu)) == [("1", 2)]

    def test_english_do_is_not_a_quantity(self, menu):
        assert _items(extract("can you do the butter chicken", menu)) == [("1", 1)]

    def test_romanized_hindi_quantity_once_the_call_is_in_hindi(self, menu):
        assert _items(extract("mujhe do butter chicken chahiye", menu, Language.HINDI)) == [("1", 2)]

    def test_telugu_alias(self, menu):
        assert _items(extract("రెండు బిర్యానీ", menu)) == [("4", 2)]

    def test_unavailable_item_is_not_matched(self, menu):
        assert extract("one gulab jamun", menu).fragments == ()

    def test_unknown_dish(self, menu):
        delta = extract("a large pepperoni pizza", menu)
        assert delta.fragments == ()

    def test_empty_text(self, menu):
        assert extract("", menu).is_empty

    def test_deterministic(self, menu):
        text = "2 butter chicken extra spicy and 3 naan for delivery"
        assert extract(text, menu) == extract(text, menu)


class TestModifiersAndInstructions:
    def test_spice_and_no_x(self, menu):
        delta = extract("one butter chicken extra spicy, no onions", menu)
        assert "extra spicy" in delta.modifiers
        assert "no onions" in delta.modifiers

    def test_no_thanks_is_not_a_modifier(self, menu):
        assert extract("no thanks", menu).modifiers == ()

    def test_dont_want_reads_as_without(self, menu):
        delta = extract("2 butter chicken, I don't want onions", menu)
        assert delta.special_instructions == ("without onions",)
        assert _items(delta) == [("1", 2)]

    def test_allergy(self, menu):
        delta = extract("I'm allergic to peanuts", menu)
        assert delta.special_instructions == ("allergic to peanuts",)

    def test_instruction_stops_at_conjunction(self, menu):
        delta = extract("naan without butter and one dosa", menu)
        assert delta.special_instructions == ("without butter",)
        assert _items(delta) == [("2", 1), ("5", 1)]

    def test_instructions_in_spoken_order(self, menu):
        delta = extract("less oil and allergic to cashews", menu)
        assert delta.special_instructions == ("less oil", "allergic to cashews")

    def test_dietary(self, menu):
        assert "vegetarian" in extract("something vegetarian please", menu).modifiers


class TestFulfillment:
    def test_delivery(self, menu):
        assert extract("two naan for delivery", menu).fulfillment == Fulfillment.DELIVERY

    def test_dine_in(self, menu):
        assert extract("we will eat here", menu).fulfillment == Fulfillment.DINE_IN

    def test_last_mention_wins(self, menu):
        delta = extract("dine in, actually no, delivery", menu)
        assert delta.fulfillment == Fulfillment.DELIVERY

    def test_unspecified(self, menu):
        assert extract("two naan", menu).fulfillment == Fulfillment.UNSPECIFIED
