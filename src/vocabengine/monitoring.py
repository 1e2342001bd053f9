"""Monitoring configuration for the engine."""
from prometheus_client import Counter, Histogram, start_http_server

# Scheduling metrics
answers_recorded = Counter(
    "vocabengine_answers_recorded_total",
    "Total number of answers recorded by the scheduler",
    ["correct"],
)

mastery_transitions = Counter(
    "vocabengine_mastery_transitions_total",
    "Total number of mastery level changes",
    ["direction"],
)

# Selection metrics
selections = Counter(
    "vocabengine_selections_total",
    "Total number of word selection requests",
    ["outcome"],  # ok, empty, fallback
)

selection_duration = Histogram(
    "vocabengine_selection_duration_seconds",
    "Duration of word selection requests in seconds",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)

scoring_degraded = Counter(
    "vocabengine_scoring_degraded_total",
    "Total number of candidates scored as new after a failed lookup",
)

# Novelty metrics
novelty_decisions = Counter(
    "vocabengine_novelty_decisions_total",
    "Total number of novelty injection decisions",
    ["decision"],
)

novelty_introductions = Counter(
    "vocabengine_novelty_introductions_total",
    "Total number of novel words introduced to learners",
)

# Cooldown metrics
word_usage_tracked = Counter(
    "vocabengine_word_usage_tracked_total",
    "Total number of word presentations recorded for cooldown",
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
