"""Politique de retry avec backoff exponentiel pour les appels fournisseur.

Les erreurs transitoires (`ProviderUnavailable`, `RateLimited`) sont rejouées un nombre borné de
fois; un `RateLimited` portant un délai fournisseur impose ce délai, tel quel. Si ce délai dépasse
`max_delay`, l'erreur remonte immédiatement (l'appelant voit `retry_after`) plutôt que de rejouer
trop tôt. Les erreurs non rejouables sont propagées immédiatement. Une fois les tentatives
épuisées, la dernière erreur typée remonte.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog

from jeet.app.metrics import PROVIDER_RETRIES
from jeet.domain.errors import AnswerEngineError, RateLimited

T = TypeVar("T")

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration du retry (tentatives, délais, jitter)."""

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0
    jitter: bool = True

    def delay_for(self, attempt: int, error: AnswerEngineError) -> float:
        """Délai avant la tentative suivante (`attempt` commence à 1)."""
        if isinstance(error, RateLimited) and error.retry_after is not None:
            return max(0.0, error.retry_after)
        delay = self.base_delay * (2 ** (attempt - 1))
        if self.jitter:
            delay *= random.uniform(0.5, 1.5)
        return min(delay, self.max_delay)


def call_with_retries(
    fn: Callable[[], T],
    policy: RetryPolicy,
    *,
    provider: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Exécute `fn` en rejouant les erreurs transitoires selon `policy`.

    Args:
        fn: Appel externe à exécuter (sans argument).
        policy: Politique de retry.
        provider: Nom du fournisseur (labels de métriques/logs).
        sleep: Fonction d'attente (injectable en test).

    Returns:
        Le résultat de `fn`.

    Raises:
        AnswerEngineError: La dernière erreur typée si les tentatives sont épuisées, ou
            immédiatement si l'erreur n'est pas rejouable.
    """
    attempts = max(1, policy.max_attempts)
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn()
        except AnswerEngineError as exc:
            if not exc.retryable or attempt >= attempts:
                raise
            delay = policy.delay_for(attempt, exc)
            if delay > policy.max_delay:
                log.warning(
                    "provider_retry_after_too_long",
                    provider=provider,
                    attempt=attempt,
                    retry_after_s=round(delay, 3),
                    max_delay_s=policy.max_delay,
                )
                raise
            PROVIDER_RETRIES.labels(provider=provider, reason=exc.code).inc()
            log.warning(
                "provider_retry",
                provider=provider,
                attempt=attempt,
                code=exc.code,
                delay_s=round(delay, 3),
            )
            sleep(delay)
