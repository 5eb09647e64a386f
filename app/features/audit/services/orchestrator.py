import asyncio
import time
from typing import Awaitable, Callable, List, Optional, TypeVar

from app.features.audit.schemas.audit import (
    AuditMode,
    AuditResult,
    LighthouseScores,
    RgpdProbeResult,
    SecurityProbeResult,
    SeoAdvanced,
    SeoBasic,
)
from app.features.audit.services.probes.performance import run_performance_probe
from app.features.audit.services.probes.rgpd import run_rgpd_probe
from app.features.audit.services.probes.security import run_security_probe
from app.features.audit.services.probes.seo_advanced import run_seo_advanced_probe
from app.features.audit.services.probes.seo_basic import run_seo_basic_probe
from app.platform.config import settings
from app.platform.exceptions import AuditFailed
from app.platform.logger import get_logger

logger = get_logger("audit_orchestrator")

T = TypeVar("T")
Probe = Callable[[str], Awaitable[T]]


class HybridAuditOrchestrator:
    """
    Runs the probes for one audit and merges their fragments.

    Performance, basic SEO and security probes always run; the performance
    and basic SEO probes are mandatory. In complete mode the deep SEO and
    RGPD/cookie probes run afterwards and are allowed to fail.
    """

    def __init__(
        self,
        performance_probe: Probe[LighthouseScores] = run_performance_probe,
        seo_basic_probe: Probe[SeoBasic] = run_seo_basic_probe,
        security_probe: Probe[SecurityProbeResult] = run_security_probe,
        seo_advanced_probe: Probe[SeoAdvanced] = run_seo_advanced_probe,
        rgpd_probe: Probe[RgpdProbeResult] = run_rgpd_probe,
        probe_timeout: Optional[float] = None,
    ):
        self.performance_probe = performance_probe
        self.seo_basic_probe = seo_basic_probe
        self.security_probe = security_probe
        self.seo_advanced_probe = seo_advanced_probe
        self.rgpd_probe = rgpd_probe
        if probe_timeout is None:
            probe_timeout = settings.PROBE_TIMEOUT_SECONDS
        self.probe_timeout = probe_timeout

    async def _run_mandatory(self, name: str, probe: Probe[T], domain: str) -> T:
        started = time.perf_counter()
        logger.info(f"[AUDIT] Starting {name} probe for {domain}")
        try:
            fragment = await asyncio.wait_for(probe(domain), timeout=self.probe_timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"[AUDIT] {name} probe timed out for {domain}")
            raise AuditFailed(f"{name} probe timed out after {self.probe_timeout:g}s") from e
        except Exception as e:
            logger.error(f"[AUDIT] {name} probe failed for {domain}: {e}")
            raise AuditFailed(str(e) or type(e).__name__) from e
        logger.info(f"[AUDIT] {name} probe finished in {_elapsed_ms(started)}ms")
        return fragment

    async def _run_optional(
        self, name: str, probe: Probe[T], domain: str, failed: List[str]
    ) -> Optional[T]:
        started = time.perf_counter()
        logger.info(f"[AUDIT] Starting {name} probe for {domain}")
        try:
            fragment = await asyncio.wait_for(probe(domain), timeout=self.probe_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[AUDIT] {name} probe timed out for {domain}; continuing without it")
            failed.append(name)
            return None
        except Exception as e:
            logger.warning(f"[AUDIT] {name} probe failed for {domain}; continuing without it: {e}")
            failed.append(name)
            return None
        logger.info(f"[AUDIT] {name} probe finished in {_elapsed_ms(started)}ms")
        return fragment

    async def run(self, domain: str, mode: AuditMode = AuditMode.fast) -> AuditResult:
        mode = AuditMode(mode)
        started = time.perf_counter()
        failed: List[str] = []
        recommendations: List[str] = []

        lighthouse = await self._run_mandatory("performance", self.performance_probe, domain)
        seo_basic = await self._run_mandatory("seo_basic", self.seo_basic_probe, domain)

        security = await self._run_optional("security", self.security_probe, domain, failed)
        if security is not None:
            recommendations.extend(security.recommendations)

        seo_advanced = None
        rgpd = None
        if mode == AuditMode.complete:
            seo_advanced = await self._run_optional(
                "seo_advanced", self.seo_advanced_probe, domain, failed
            )
            rgpd = await self._run_optional("rgpd", self.rgpd_probe, domain, failed)
            if rgpd is not None:
                recommendations.extend(rgpd.recommendations)

        execution_time = _elapsed_ms(started)
        logger.info(f"[AUDIT] {mode.value} audit of {domain} completed in {execution_time}ms")

        return AuditResult(
            lighthouse=lighthouse,
            seo_basic=seo_basic,
            security=security.security if security else None,
            rgpd=rgpd.rgpd if rgpd else None,
            cookies=rgpd.cookies if rgpd else None,
            seo_advanced=seo_advanced,
            recommendations=recommendations,
            failed_probes=failed,
            execution_time=execution_time,
            mode=mode,
        )


def _elapsed_ms(started: float) -> int:
    return max(0, int((time.perf_counter() - started) * 1000))


orchestrator = HybridAuditOrchestrator()


async def run_audit(domain: str, mode: AuditMode = AuditMode.fast) -> AuditResult:
    return await orchestrator.run(domain, mode)
