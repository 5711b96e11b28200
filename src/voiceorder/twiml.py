"""TwiML rendering for prompt plans.

A gather plan speaks its segments inside <Gather> and then redirects back
to the turn endpoint, so a caller who says nothing still produces a
(no-input) turn. An end-call plan speaks and hangs up.
"""

from xml.sax.saxutils import escape, quoteattr

from voiceorder.prompts import PromptPlan
from voiceorder.states import Language

TURN_PATH = "/api/telephony/process-speech"

VOICES = {
    Language.ENGLISH: "Polly.Joanna",
    Language.HINDI: "Polly.Aditi",
    Language.TELUGU: "Polly.Aditi",
    Language.SPANISH: "Polly.Lupe",
}

LOCALE_CODES = {
    Language.ENGLISH: "en-US",
    Language.HINDI: "hi-IN",
    Language.TELUGU: "te-IN",
    Language.SPANISH: "es-ES",
}


def _say(text: str, language: Language) -> str:
    return (
        f'<Say voice={quoteattr(VOICES[language])} language={quoteattr(LOCALE_CODES[language])}>'
        f'{escape(text)}'
        '</Say>'
    )


def render(plan: PromptPlan, action_url: str = TURN_PATH) -> str:
    says = "".join(_say(s.text, s.language) for s in plan.segments if s.text)
    if plan.end_call:
        return f'<?xml version="1.0" encoding="UTF-8"?><Response>{says}<Hangup/></Response>'
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<Response>'
        f'<Gather input="speech dtmf" action={quoteattr(action_url)} method="POST"'
        f' language={quoteattr(LOCALE_CODES[plan.language])}'
        ' speechTimeout="auto" speechModel="phone_call" numDigits="1">'
        f'{says}'
        '</Gather>'
        f'<Redirect method="POST">{escape(action_url)}</Redirect>'
        '</Response>'
    )
