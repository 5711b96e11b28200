from dataclasses import asdict, dataclass

from voiceorder.session import ArchivedCall


@dataclass(frozen=True)
class CallStatistics:
    total_calls: int = 0
    answered_calls: int = 0
    missed_calls: int = 0
    average_duration_minutes: float = 0.0
    orders_placed: int = 0
    conversion_rate: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def compute_call_statistics(calls) -> CallStatistics:
    """Aggregate archived calls. Recomputed on every request, never stored."""
    calls: list[ArchivedCall] = list(calls)
    answered = [c for c in calls if c.answered]
    orders_placed = sum(1 for c in calls if c.result_order_id is not None)

    average = 0.0
    if answered:
        average = round(sum(c.duration_seconds for c in answered) / len(answered) / 60, 1)

    conversion = 0
    if answered:
        conversion = round(orders_placed / len(answered) * 100)

    return CallStatistics(
        total_calls=len(calls),
        answered_calls=len(answered),
        missed_calls=len(calls) - len(answered),
        average_duration_minutes=average,
        orders_placed=orders_placed,
        conversion_rate=conversion,
    )
