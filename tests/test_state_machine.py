import pytest
from voiceorder.config import Settings
from voiceorder.materializer import MaterializedOrder
from voiceorder.session import CallSession, Speaker, Turn
from voiceorder.state_machine import MATERIALIZE_ORDER, TRANSITIONS, InvalidTransition, StateMachine, _transition
from voiceorder.states import Language, State


def say(machine, session, text="", digits="", confidence=0.9):
    return machine.process(session, Turn(text=text, confidence=confidence, digits=digits), now=1000.0)


class TestGreeting:
    def test_greet_records_prompt(self, machine, session, bundle):
        action = machine.greet(session, now=1.0)
        assert action.speak == bundle.get(Language.ENGLISH, "greeting")
        assert session.last_prompt == action.speak
        assert session.transcript[-1].speaker == Speaker.SYSTEM

    def test_order_goes_to_confirmation(self, machine, session):
        action = say(machine, session, "I'd like to order 2 butter chicken and 3 naan")
        assert session.state == State.CONFIRMING_ORDER
        assert "2 Butter Chicken, 3 Naan" in action.speak
        assert not action.end_call

    def test_dont_want_is_a_modifier_not_a_cancel(self, machine, session):
        action = say(machine, session, "2 butter chicken, I don't want onions")
        assert session.state == State.CONFIRMING_ORDER
        assert "without onions" in session.pending_order.special_instructions
        assert "2 Butter Chicken" in action.speak

    def test_english_do_is_not_a_quantity(self, machine, session):
        say(machine, session, "can you do the butter chicken")
        assert [(f.menu_item_id, f.quantity) for f in session.pending_order.fragments] == [("1", 1)]

    def test_help_lists_menu(self, machine, session):
        action = say(machine, session, "what's on the menu")
        assert session.state == State.AWAITING_ORDER
        assert "Paneer Tikka" in action.speak
        assert session.retry_count == 0

    def test_nothing_recognized_asks_again(self, machine, session, bundle):
        action = say(machine, session, "a large pepperoni pizza")
        assert session.state == State.AWAITING_ORDER
        assert session.retry_count == 1
        assert action.speak == bundle.get(Language.ENGLISH, "clarify_text")


class TestScenarioA:
    def test_confirmed_order_is_materialized_and_finalized(self, machine, session):
        readback = say(machine, session, "I'd like to order 2 butter chicken and 3 naan")
        assert "2 Butter Chicken" in readback.speak and "3 Naan" in readback.speak

        action = say(machine, session, "yes")
        assert action.call_tool == MATERIALIZE_ORDER
        assert [(f.menu_item_id, f.quantity) for f in session.pending_order.fragments] == [("1", 2), ("2", 3)]

        done = machine.handle_tool_result(session, MATERIALIZE_ORDER, MaterializedOrder("ord-1", "A-101"), now=1001.0)
        assert session.state == State.FINALIZED
        assert session.result_order_id == "ord-1"
        assert "A-101" in done.speak
        assert done.end_call
        assert session.finalized_at == 1001.0


class TestScenarioB:
    def test_devanagari_sets_hindi_for_the_rest_of_the_call(self, machine, session, bundle):
        action = say(machine, session, "मुझे दो butter chicken चाहिए")
        assert session.language == Language.HINDI
        assert action.speak.startswith(bundle.get(Language.HINDI, "confirmation_prompt"))

        action = say(machine, session, "नहीं")
        assert session.state == State.AWAITING_RETRY
        assert action.speak == bundle.get(Language.HINDI, "retry_offer")

    def test_language_is_not_redetected_once_set(self, machine, session):
        say(machine, session, "मुझे दो बटर चिकन चाहिए")
        say(machine, session, "नहीं")
        say(machine, session, "हाँ")
        assert session.state == State.AWAITING_ORDER
        say(machine, session, "Hola, quiero dos naan por favor")
        assert session.language == Language.HINDI


class TestScenarioC:
    def test_cancel_after_building_an_order(self, machine, session, bundle):
        say(machine, session, "2 butter chicken")
        say(machine, session, "and 3 naan")
        assert len(session.pending_order.fragments) == 2

        action = say(machine, session, "cancel")
        assert session.state == State.CANCELLED
        assert action.end_call
        assert action.call_tool == ""
        assert session.result_order_id is None
        confirmed = bundle.get(Language.ENGLISH, "farewell")
        assert all(confirmed not in u.text for u in session.transcript)

    def test_cancel_wins_in_every_live_state(self, machine, menu):
        for setup in ([], ["2 naan"], ["2 naan", "no"]):
            session = CallSession(call_id="CA_cancel", menu=menu)
            for line in setup:
                say(machine, session, line)
            say(machine, session, "cancel my order")
            assert session.state == State.CANCELLED


class TestScenarioD:
    def test_fourth_turn_abandons_even_with_a_valid_order(self, machine, session, bundle):
        for _ in range(3):
            action = say(machine, session, "")
            assert not action.end_call
        assert session.retry_count == 3

        action = say(machine, session, "2 butter chicken and 3 naan")
        assert session.state == State.ABANDONED
        assert action.end_call
        assert action.speak == bundle.get(Language.ENGLISH, "no_input_text")
        assert session.pending_order.is_empty

    def test_no_input_reprompts_with_last_prompt(self, machine, session):
        greeting = machine.greet(session, now=1.0).speak
        assert say(machine, session, "").speak == greeting

    def test_productive_turn_resets_retries(self, machine, session):
        say(machine, session, "")
        say(machine, session, "")
        say(machine, session, "2 naan")
        assert session.retry_count == 0

    def test_silence_while_confirming_exhausts_retries(self, machine, session):
        say(machine, session, "2 naan")
        for _ in range(3):
            say(machine, session, "")
        assert session.state == State.CONFIRMING_ORDER
        action = say(machine, session, "")
        assert session.state == State.ABANDONED
        assert action.end_call

    def test_zero_max_retries_abandons_on_first_miss(self, bundle, session):
        machine = StateMachine(Settings(max_retries=0), bundle)
        action = say(machine, session, "")
        assert session.state == State.ABANDONED
        assert action.end_call


class TestConfirmation:
    def test_keypad_confirm(self, machine, session):
        say(machine, session, "2 naan")
        assert say(machine, session, digits="1").call_tool == MATERIALIZE_ORDER

    def test_unclear_answer_offers_a_retry(self, machine, session, bundle):
        say(machine, session, "2 naan")
        action = say(machine, session, "hmm")
        assert session.state == State.AWAITING_RETRY
        assert action.speak == bundle.get(Language.ENGLISH, "retry_offer")

    def test_yes_with_a_modifier_confirms(self, machine, session):
        say(machine, session, "2 naan")
        action = say(machine, session, "yes, no onions please")
        assert action.call_tool == MATERIALIZE_ORDER
        assert "no onions" in session.pending_order.modifiers
        assert [(f.menu_item_id, f.quantity) for f in session.pending_order.fragments] == [("2", 2)]

    def test_new_order_after_deny_passes_through_awaiting_order(self, machine, session):
        say(machine, session, "2 naan")
        say(machine, session, "no")
        say(machine, session, "one masala dosa")
        assert session.state == State.CONFIRMING_ORDER
        assert State.CONFIRMING_ORDER not in TRANSITIONS[State.AWAITING_RETRY]

    def test_deny_then_retry(self, machine, session, bundle):
        say(machine, session, "2 naan")
        say(machine, session, "no")
        assert session.state == State.AWAITING_RETRY
        action = say(machine, session, "yes")
        assert session.state == State.AWAITING_ORDER
        assert session.pending_order.is_empty
        assert action.speak == bundle.get(Language.ENGLISH, "try_again")

    def test_deny_then_new_order(self, machine, session):
        say(machine, session, "2 naan")
        say(machine, session, "no")
        action = say(machine, session, "3 paneer tikka")
        assert session.state == State.CONFIRMING_ORDER
        assert [f.menu_item_id for f in session.pending_order.fragments] == ["3"]
        assert "3 Paneer Tikka" in action.speak

    def test_deny_then_decline(self, machine, session):
        say(machine, session, "2 naan")
        say(machine, session, "no")
        action = say(machine, session, "no thanks")
        assert session.state == State.CANCELLED
        assert action.end_call


class TestLanguageSelection:
    def test_low_asr_confidence_never_sets_language(self, machine, session):
        say(machine, session, "Hola, quiero dos naan por favor", confidence=0.2)
        assert session.language is None

    def test_confident_spanish_sets_language(self, machine, session):
        say(machine, session, "Hola, quiero dos naan por favor", confidence=0.95)
        assert session.language == Language.SPANISH

    def test_ambiguous_text_leaves_language_unset(self, machine, session):
        say(machine, session, "2 naan")
        assert session.language is None

    def test_keypad_reselection(self, machine, session, bundle):
        action = say(machine, session, digits="3")
        assert session.language == Language.TELUGU
        assert action.speak == bundle.get(Language.TELUGU, "language_selected")
        assert session.retry_count == 0

    def test_auto_detect_off(self, bundle, session):
        machine = StateMachine(Settings(auto_detect_language=False), bundle)
        say(machine, session, "Hola, quiero dos naan por favor")
        assert session.language is None


class TestTerminal:
    def test_turn_after_end_says_goodbye(self, machine, session):
        say(machine, session, "cancel")
        transcript_len = len(session.transcript)
        action = say(machine, session, "2 naan")
        assert action.end_call
        assert len(session.transcript) == transcript_len

    def test_abandon_is_idempotent(self, machine, session):
        machine.abandon(session, now=5.0, reason="hangup")
        machine.abandon(session, now=6.0, reason="hangup")
        assert session.state == State.ABANDONED
        assert session.finalized_at == 5.0

    def test_invalid_transition(self, session):
        with pytest.raises(InvalidTransition):
            _transition(session, State.FINALIZED, 1.0)

    def test_transcript_alternates_caller_then_system(self, machine, session):
        say(machine, session, "2 naan")
        assert [u.speaker for u in session.transcript] == [Speaker.CALLER, Speaker.SYSTEM]
