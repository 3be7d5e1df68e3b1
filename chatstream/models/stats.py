"""Per-exchange streaming statistics."""

from dataclasses import dataclass


@dataclass
class StreamStats:
    """Timing and throughput of one exchange.

    Token counts are whitespace-delimited word counts of the assistant text, an
    approximation for diagnostics rather than a tokenizer-exact figure.
    """

    model_id: str
    started_at: float
    tokens: int = 0
    first_token_ms: float | None = None
    duration_ms: float | None = None

    @property
    def tokens_per_second(self) -> float:
        """Throughput over the whole exchange, 0 until it completes."""
        if not self.duration_ms or self.duration_ms <= 0:
            return 0.0
        return self.tokens / self.duration_ms * 1000

    def describe(self) -> str:
        """One-line human readable summary."""
        ttft = f"{self.first_token_ms:.0f}ms" if self.first_token_ms is not None else "N/A"
        total = f"{self.duration_ms / 1000:.2f}s" if self.duration_ms else "0s"
        return (
            f"Model: {self.model_id} | Tokens: {self.tokens} | Speed: {self.tokens_per_second:.1f} t/s | "
            f"TTFT: {ttft} | Duration: {total}"
        )
