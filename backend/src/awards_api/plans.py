"""Plan registry: the single mapping from Stripe prices to entitlements.

Both the provisioning flow and the billing webhook resolve plans here, so a
given price id always yields the same tier, domains and limits.
"""
from dataclasses import dataclass
from typing import Optional

from awards_api.config import Settings, settings
from awards_api.errors import ConfigurationError
from awards_api.models.api_key import Domain, Tier

FREE_PLAN_KEY = "free"


@dataclass(frozen=True)
class PlanDefinition:
    """Entitlements granted by one priced plan."""

    plan_key: str
    tier: Tier
    domains: tuple[str, ...]
    daily_limit: int
    monthly_limit: int
    price_id: Optional[str] = None
    interval: Optional[str] = None  # month, year
    legacy: bool = False

    def as_limits(self) -> dict:
        """Column values applied to an API key row."""
        return {
            "tier": self.tier,
            "allowed_domains": list(self.domains),
            "daily_limit": self.daily_limit,
            "monthly_limit": self.monthly_limit,
        }


GAMES = (Domain.GAMES.value,)
FILM = (Domain.FILM.value,)
BUNDLE = (Domain.GAMES.value, Domain.FILM.value)

# (tier, domains, daily_limit, monthly_limit, legacy) per product; monthly and
# annual billing share entitlements.
_PRODUCTS: dict[str, tuple[Tier, tuple[str, ...], int, int, bool]] = {
    "games_starter": (Tier.GAMES_STARTER, GAMES, 1000, 10000, False),
    "games_pro": (Tier.GAMES_PRO, GAMES, 25000, 250000, False),
    "film_starter": (Tier.FILM_STARTER, FILM, 5000, 50000, False),
    "film_pro": (Tier.FILM_PRO, FILM, 50000, 500000, False),
    "bundle_starter": (Tier.BUNDLE_STARTER, BUNDLE, 6000, 60000, False),
    "bundle_pro": (Tier.BUNDLE_PRO, BUNDLE, 70000, 700000, False),
    "professional": (Tier.PROFESSIONAL, BUNDLE, 3333, 100000, True),
    "enterprise": (Tier.ENTERPRISE, BUNDLE, 33333, 1000000, True),
}

_INTERVALS = {"monthly": "month", "annual": "year"}


class PlanRegistry:
    """Lookup of plan definitions by plan key or Stripe price id."""

    def __init__(self, plans: list[PlanDefinition], free_plan: PlanDefinition):
        self.free_plan = free_plan
        self._by_key: dict[str, PlanDefinition] = {}
        self._by_price: dict[str, PlanDefinition] = {}

        for plan in plans:
            self._by_key[plan.plan_key] = plan
            if plan.price_id:
                self._by_price[plan.price_id] = plan

    @classmethod
    def from_settings(cls, config: Settings) -> "PlanRegistry":
        """
        Build the registry from application settings.

        Args:
            config: Loaded settings with one price id per plan key

        Returns:
            PlanRegistry covering every configured plan
        """
        prices = config.stripe_price.model_dump()
        plans = []

        for product, (tier, domains, daily, monthly, legacy) in _PRODUCTS.items():
            for suffix, interval in _INTERVALS.items():
                plan_key = f"{product}_{suffix}"
                plans.append(
                    PlanDefinition(
                        plan_key=plan_key,
                        tier=tier,
                        domains=domains,
                        daily_limit=daily,
                        monthly_limit=monthly,
                        price_id=(prices.get(plan_key) or "").strip() or None,
                        interval=interval,
                        legacy=legacy,
                    )
                )

        free_plan = PlanDefinition(
            plan_key=FREE_PLAN_KEY,
            tier=Tier.FREE,
            domains=tuple(config.free_tier_domains),
            daily_limit=config.free_tier_daily_limit,
            monthly_limit=config.free_tier_monthly_limit,
        )

        return cls(plans, free_plan)

    def get(self, identifier: Optional[str]) -> Optional[PlanDefinition]:
        """
        Strict lookup by plan key or price id.

        Returns:
            Matching plan, or None if the identifier is unknown
        """
        if not identifier:
            return None
        return self._by_key.get(identifier) or self._by_price.get(identifier)

    def lookup(self, identifier: Optional[str]) -> PlanDefinition:
        """
        Fail-safe lookup by plan key or price id.

        Unknown identifiers resolve to the free plan, never to an elevated tier.
        """
        return self.get(identifier) or self.free_plan

    def plan_keys(self, include_legacy: bool = False) -> list[str]:
        """Plan keys offered to customers."""
        return [key for key, plan in self._by_key.items() if include_legacy or not plan.legacy]

    def plans(self, include_legacy: bool = False) -> list[PlanDefinition]:
        """Plan definitions offered to customers."""
        return [self._by_key[key] for key in self.plan_keys(include_legacy)]

    def validate(self) -> None:
        """
        Assert every plan key has a price id and keys and prices are one-to-one.

        Raises:
            ConfigurationError: On a missing or shared price id
        """
        missing = [key for key, plan in self._by_key.items() if not plan.price_id]
        if missing:
            raise ConfigurationError(
                "Plans without a Stripe price id: " + ", ".join(sorted(missing)),
                plans=sorted(missing),
            )

        seen: dict[str, str] = {}
        for key, plan in self._by_key.items():
            if plan.price_id in seen:
                raise ConfigurationError(
                    f"Price {plan.price_id} is mapped to both {seen[plan.price_id]} and {key}",
                    price_id=plan.price_id,
                )
            seen[plan.price_id] = key

        if FREE_PLAN_KEY in self._by_key or FREE_PLAN_KEY in self._by_price:
            raise ConfigurationError("'free' is reserved for the default plan")


# Global registry instance
plan_registry = PlanRegistry.from_settings(settings)


def get_plan_registry() -> PlanRegistry:
    """Dependency returning the process-wide plan registry."""
    return plan_registry
