"""Cost table: per-provider pricing and integer-cent cost computation."""

from decimal import ROUND_UP, Decimal

from pydantic import BaseModel, ConfigDict, Field

_ONE_THOUSAND = Decimal("1000")


class CostPer1K(BaseModel):
    """Cost per 1000 tokens in US cents."""

    model_config = ConfigDict(frozen=True)

    input: Decimal = Field(ge=0)
    output: Decimal = Field(ge=0)


def compute_cost_cents(pricing: CostPer1K, tokens_in: int, tokens_out: int) -> int:
    """Cost of one call in whole cents, rounded up.

    Any non-zero spend costs at least one cent so that cheap calls
    still show up in per-user cost totals.
    """
    total = (
        Decimal(tokens_in) * pricing.input + Decimal(tokens_out) * pricing.output
    ) / _ONE_THOUSAND
    return int(total.to_integral_value(rounding=ROUND_UP))


class CostTable:
    """Static pricing keyed by (provider name, model id).

    Built once from the provider registry; read-only afterwards.
    """

    def __init__(self, prices: dict[tuple[str, str], CostPer1K]) -> None:
        self._prices = dict(prices)

    def get_pricing(self, provider: str, model_id: str) -> CostPer1K:
        """Pricing for a provider/model pair.

        Raises:
            KeyError: If the pair is not in the table.
        """
        try:
            return self._prices[(provider, model_id)]
        except KeyError:
            raise KeyError(f"No pricing for {provider}/{model_id}") from None

    def cost_cents(
        self,
        provider: str,
        model_id: str,
        tokens_in: int,
        tokens_out: int,
    ) -> int:
        return compute_cost_cents(
            self.get_pricing(provider, model_id), tokens_in, tokens_out
        )

    def __contains__(self, key: object) -> bool:
        return key in self._prices

    def __len__(self) -> int:
        return len(self._prices)
