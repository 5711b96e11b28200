from voiceorder.prompts import Directive, PromptPlan, Segment
from voiceorder.states import Language
from voiceorder.twiml import TURN_PATH, render


class TestRender:
    def test_gather_then_redirect(self):
        xml = render(PromptPlan.say("What would you like?", Language.ENGLISH))
        assert '<Gather input="speech dtmf"' in xml
        assert f'action="{TURN_PATH}"' in xml
        assert 'language="en-US"' in xml
        assert '<Say voice="Polly.Joanna" language="en-US">What would you like?</Say>' in xml
        assert xml.index("</Gather>") < xml.index("<Redirect")
        assert "<Hangup/>" not in xml

    def test_end_call_hangs_up(self):
        xml = render(PromptPlan.say("Goodbye!", Language.SPANISH, end_call=True))
        assert "<Gather" not in xml
        assert 'voice="Polly.Lupe"' in xml
        assert xml.endswith("<Hangup/></Response>")

    def test_escapes_text(self):
        xml = render(PromptPlan.say('Fish & chips <extra> "now"', Language.ENGLISH))
        assert "Fish &amp; chips &lt;extra&gt;" in xml
        assert "<extra>" not in xml

    def test_hindi_and_telugu_voices(self):
        assert 'voice="Polly.Aditi" language="hi-IN"' in render(PromptPlan.say("नमस्ते", Language.HINDI))
        assert 'language="te-IN"' in render(PromptPlan.say("నమస్కారం", Language.TELUGU))

    def test_each_segment_in_its_own_voice(self):
        plan = PromptPlan(
            segments=(Segment("Press 1", Language.ENGLISH), Segment("4 दबाएं", Language.HINDI)),
            directive=Directive.GATHER,
            language=Language.ENGLISH,
        )
        xml = render(plan)
        assert xml.count("<Say") == 2
        assert 'language="hi-IN">4 दबाएं</Say>' in xml

    def test_custom_action_url(self):
        xml = render(PromptPlan.say("Hi", Language.ENGLISH), action_url="/turn?a=1&b=2")
        assert 'action="/turn?a=1&amp;b=2"' in xml
