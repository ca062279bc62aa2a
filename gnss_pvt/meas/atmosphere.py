"""Per-vehicle troposphere/ionosphere corrections with provider fallback.

External providers are plain callables ``(t, altitude_m, latitude_deg)``
returning components or ``None`` when they hold no data for the epoch. The
internal models implement the same call signature and sit at the end of a
``FallbackChain`` so a correction is always produced.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Generic, Optional, Protocol, TypeVar

from gnss_pvt.carrier import iono_scale
from gnss_pvt.meas.iono_klobuchar import KlobucharIonosphere, klobuchar_delay_m, obliquity_factor
from gnss_pvt.meas.tropo_saastamoinen import SaastamoinenTroposphere, cosecant_mapping, niell_mapping
from gnss_pvt.models import Candidate, IonoComponents, TropoComponents
from gnss_pvt.utils.gnss_time import day_of_year
from gnss_pvt.utils.logging import get_logger

if TYPE_CHECKING:
    from gnss_pvt.config import SolverConfig

LOGGER = get_logger(__name__)

ADVISED_MIN_ELEVATION_DEG = 5.0

T = TypeVar("T")


class TropoProvider(Protocol):
    def __call__(self, t: float, altitude_m: float, latitude_deg: float) -> Optional[TropoComponents]: ...


class IonoProvider(Protocol):
    def __call__(self, t: float, altitude_m: float, latitude_deg: float) -> Optional[IonoComponents]: ...


class FallbackChain(Generic[T]):
    """Ask providers in order and return the first answer."""

    def __init__(self, *providers: Callable[[float, float, float], Optional[T]]) -> None:
        if not providers:
            raise ValueError("FallbackChain needs at least one provider")
        self.providers = providers

    def resolve(self, t: float, altitude_m: float, latitude_deg: float) -> tuple[T | None, int]:
        """Return the answer and the index of the provider that gave it."""

        for idx, provider in enumerate(self.providers):
            result = provider(t, altitude_m, latitude_deg)
            if result is not None:
                return result, idx
        return None, len(self.providers)

    def __call__(self, t: float, altitude_m: float, latitude_deg: float) -> T | None:
        return self.resolve(t, altitude_m, latitude_deg)[0]


@dataclass(frozen=True)
class ReceiverContext:
    """Receiver location used to evaluate atmosphere models."""

    t: float
    lat_deg: float
    lon_deg: float
    alt_m: float


@dataclass(frozen=True)
class AtmosphereCorrection:
    """Troposphere and ionosphere contributions for one vehicle."""

    tropo: TropoComponents | None
    iono: IonoComponents | None
    tropo_delay_m: float
    iono_delay_l1_m: float
    tropo_from_fallback: bool = False

    def iono_delay_m(self, frequency_hz: float) -> float:
        return self.iono_delay_l1_m * iono_scale(frequency_hz)


NO_CORRECTION = AtmosphereCorrection(tropo=None, iono=None, tropo_delay_m=0.0, iono_delay_l1_m=0.0)


class AtmosphereCorrector:
    """Supplies troposphere and ionosphere delays per candidate."""

    def __init__(
        self,
        cfg: "SolverConfig",
        tropo_provider: TropoProvider | None = None,
        iono_provider: IonoProvider | None = None,
    ) -> None:
        self.cfg = cfg
        fallback_tropo = SaastamoinenTroposphere()
        fallback_iono = KlobucharIonosphere(cfg.iono_alpha, cfg.iono_beta)
        tropo_chain = (tropo_provider, fallback_tropo) if tropo_provider is not None else (fallback_tropo,)
        iono_chain = (iono_provider, fallback_iono) if iono_provider is not None else (fallback_iono,)
        self._tropo = FallbackChain(*tropo_chain)
        self._iono = FallbackChain(*iono_chain)
        self._fallback_tropo_index = len(tropo_chain) - 1
        self._advisory_logged = False

    @property
    def iono_enabled(self) -> bool:
        return self.cfg.modeling.iono_delay and not self.cfg.iono_free

    def troposphere(self, candidate: Candidate, rx: ReceiverContext) -> tuple[TropoComponents | None, bool]:
        """Return mapped troposphere components and whether the fallback answered."""

        if not self.cfg.modeling.tropo_delay:
            return None, False
        zenith, source = self._tropo.resolve(rx.t, rx.alt_m, rx.lat_deg)
        used_fallback = source == self._fallback_tropo_index
        if used_fallback:
            self._advise_low_elevation()
        elev = candidate.elevation_deg if candidate.elevation_deg is not None else 90.0
        if self.cfg.tropo_model == "niell":
            m_dry, m_wet = niell_mapping(elev, rx.lat_deg, rx.alt_m, day_of_year(rx.t))
        else:
            m_dry = m_wet = cosecant_mapping(elev)
        mapped = TropoComponents(
            zenith_dry_m=zenith.zenith_dry_m,
            zenith_wet_m=zenith.zenith_wet_m,
            mapping_dry=m_dry,
            mapping_wet=m_wet,
        )
        return mapped, used_fallback

    def ionosphere(self, candidate: Candidate, rx: ReceiverContext) -> tuple[IonoComponents | None, float]:
        """Return the ionosphere description and its slant L1 delay in meters."""

        if not self.iono_enabled:
            return None, 0.0
        components = self._iono(rx.t, rx.alt_m, rx.lat_deg)
        elev = candidate.elevation_deg if candidate.elevation_deg is not None else 90.0
        az = candidate.azimuth_deg if candidate.azimuth_deg is not None else 0.0
        if components.slant_delay_l1_m is not None:
            delay = float(components.slant_delay_l1_m)
        elif components.vertical_delay_l1_m is not None:
            delay = float(components.vertical_delay_l1_m) * obliquity_factor(elev)
        else:
            delay = klobuchar_delay_m(
                rx.t,
                rx.lat_deg,
                rx.lon_deg,
                elev,
                az,
                alpha=components.klobuchar_alpha,
                beta=components.klobuchar_beta,
            )
        return components, delay

    def correct(self, candidate: Candidate, rx: ReceiverContext) -> AtmosphereCorrection:
        tropo, from_fallback = self.troposphere(candidate, rx)
        iono, iono_delay = self.ionosphere(candidate, rx)
        correction = AtmosphereCorrection(
            tropo=tropo,
            iono=iono,
            tropo_delay_m=tropo.slant_delay_m if tropo is not None else 0.0,
            iono_delay_l1_m=iono_delay,
            tropo_from_fallback=from_fallback,
        )
        LOGGER.debug(
            "%s tropo %.3f m iono(L1) %.3f m",
            candidate.sv_id,
            correction.tropo_delay_m,
            correction.iono_delay_l1_m,
        )
        return correction

    def _advise_low_elevation(self) -> None:
        if self._advisory_logged:
            return
        mask = self.cfg.min_sv_elev_deg
        if mask is None or mask < ADVISED_MIN_ELEVATION_DEG:
            LOGGER.warning(
                "internal troposphere model in use with elevation mask %s deg; >= %.0f deg is recommended",
                mask,
                ADVISED_MIN_ELEVATION_DEG,
            )
        self._advisory_logged = True
