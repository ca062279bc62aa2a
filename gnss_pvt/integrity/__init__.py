"""Solution quality: DOP and confirmation criteria."""

from gnss_pvt.integrity.dop import SINGULAR_DOP, compute_dop
from gnss_pvt.integrity.validator import SolutionValidator, chi2_threshold, residual_stats

__all__ = ["SINGULAR_DOP", "SolutionValidator", "chi2_threshold", "compute_dop", "residual_stats"]
