"""Drive the engine through a scripted call, exactly as the gateway does.

Used by the simulate-call endpoint and by tests; it is not a second
implementation of the dialogue.
"""

import logging
import uuid
from dataclasses import dataclass, field

from voiceorder.engine import OrderIntakeEngine
from voiceorder.prompts import PromptPlan
from voiceorder.session import Turn
from voiceorder.transcript import to_json_array

logger = logging.getLogger(__name__)

DEFAULT_SCRIPT = (
    "I'd like to order 2 butter chicken, 3 naan, and a paneer tikka",
    "yes",
)
DEFAULT_CALLER = "+15555550100"


@dataclass
class SimulationResult:
    call_id: str
    prompts: list[PromptPlan] = field(default_factory=list)
    final_state: str = ""
    order_id: str | None = None
    order_number: str | None = None
    transcript: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "call_id": self.call_id,
            "prompts": [p.to_dict() for p in self.prompts],
            "final_state": self.final_state,
            "order_id": self.order_id,
            "order_number": self.order_number,
            "transcript": self.transcript,
        }


class CallSimulator:
    def __init__(self, engine: OrderIntakeEngine):
        self.engine = engine

    async def run(self, script=DEFAULT_SCRIPT, caller_number: str = DEFAULT_CALLER, call_id: str = "") -> SimulationResult:
        """Play script lines as caller turns.

        Lines may be plain text or Turn objects (for keypad input or a
        specific ASR confidence). If the script runs out before the call
        ends, the simulated caller hangs up.
        """
        call_id = call_id or f"SIM-{uuid.uuid4().hex[:12].upper()}"
        result = SimulationResult(call_id=call_id)

        plan = await self.engine.incoming_call(call_id, caller_number)
        result.prompts.append(plan)

        for line in script:
            if plan.end_call:
                break
            turn = line if isinstance(line, Turn) else Turn(text=line, confidence=1.0)
            plan = await self.engine.turn(call_id, turn.text, turn.confidence, turn.digits)
            result.prompts.append(plan)

        if not plan.end_call:
            logger.info("Simulated caller on %s hung up after the script ended", call_id)
            await self.engine.hangup(call_id)

        archived = next((c for c in self.engine.store.archived() if c.call_id == call_id), None)
        if archived is not None:
            result.final_state = archived.state.value
            result.order_id = archived.result_order_id
            result.order_number = archived.result_order_number
            result.transcript = to_json_array(list(archived.transcript))
        return result
