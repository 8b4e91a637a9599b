"""Threshold estimation from the image neighbourhood of a brush center.

Used by the dynamic threshold stage: the intensities sampled around the
center are summarised either by simple statistics or by a Gaussian Mixture
Model, and the component containing the center intensity defines the
threshold range.
"""

import logging
from typing import Optional

import numpy as np
from sklearn.mixture import GaussianMixture

logger = logging.getLogger(__name__)


class IntensityAnalyzer:
    """Estimate a [lower, upper] intensity range around a seed intensity."""

    def __init__(self, use_gmm: bool = False, n_components_range: tuple[int, int] = (2, 4)):
        """Initialize the analyzer.

        Args:
            use_gmm: Fit a Gaussian Mixture Model instead of simple statistics.
            n_components_range: Range of GMM components to try (min, max).
        """
        self.use_gmm = use_gmm
        self.n_components_range = n_components_range

    def analyze(
        self,
        samples: np.ndarray,
        seed_intensity: Optional[float] = None,
        edge_sensitivity: float = 0.5,
    ) -> dict:
        """Analyze sampled intensities.

        Args:
            samples: Intensities around the seed (any shape, flattened).
            seed_intensity: Intensity at the seed. Defaults to the sample median.
            edge_sensitivity: 0.0 = permissive (wide range), 1.0 = strict (narrow range).

        Returns:
            Dictionary with 'lower', 'upper', 'mean', 'std' and 'n_components'.
        """
        roi = np.asarray(samples, dtype=np.float64).reshape(-1)
        if seed_intensity is None:
            seed_intensity = float(np.median(roi)) if roi.size else 0.0

        if self.use_gmm:
            return self._gmm_analysis(roi, seed_intensity, edge_sensitivity)

        return self._simple_statistics(roi, seed_intensity, edge_sensitivity)

    def _gmm_analysis(self, roi: np.ndarray, seed_intensity: float, edge_sensitivity: float) -> dict:
        if len(roi) < 100:
            # Too few samples for GMM
            return self._simple_statistics(roi, seed_intensity, edge_sensitivity)

        if len(roi) > 10000:
            rng = np.random.default_rng(42)
            roi_sample = roi[rng.choice(len(roi), 10000, replace=False)]
        else:
            roi_sample = roi

        X = roi_sample.reshape(-1, 1)

        # Select number of components by BIC
        best_gmm = None
        best_bic = np.inf
        for n_components in range(self.n_components_range[0], self.n_components_range[1] + 1):
            if n_components > len(np.unique(roi_sample)):
                break
            gmm = GaussianMixture(n_components=n_components, random_state=42, max_iter=100)
            gmm.fit(X)
            bic = gmm.bic(X)
            if bic < best_bic:
                best_bic = bic
                best_gmm = gmm

        if best_gmm is None:
            return self._simple_statistics(roi, seed_intensity, edge_sensitivity)

        seed_component = best_gmm.predict([[seed_intensity]])[0]
        component_mean = float(best_gmm.means_[seed_component][0])
        component_std = float(np.sqrt(best_gmm.covariances_[seed_component].reshape(-1)[0]))

        # sensitivity=0.0 -> 3.5 sigma, 0.5 -> 2.25 sigma, 1.0 -> 1.0 sigma
        sigma_multiplier = 3.5 - (2.5 * edge_sensitivity)
        data_min, data_max = float(roi.min()), float(roi.max())

        return {
            "lower": max(data_min, component_mean - sigma_multiplier * component_std),
            "upper": min(data_max, component_mean + sigma_multiplier * component_std),
            "mean": component_mean,
            "std": component_std,
            "n_components": best_gmm.n_components,
        }

    def _simple_statistics(self, roi: np.ndarray, seed_intensity: float, edge_sensitivity: float) -> dict:
        if len(roi) == 0:
            base_tolerance = 50 * (1.5 - edge_sensitivity)
            return {
                "lower": seed_intensity - base_tolerance,
                "upper": seed_intensity + base_tolerance,
                "mean": seed_intensity,
                "std": 50.0,
                "n_components": 1,
            }

        global_std = float(np.std(roi))
        if global_std < 1e-6:
            # Constant region
            return {
                "lower": seed_intensity - 1,
                "upper": seed_intensity + 1,
                "mean": seed_intensity,
                "std": 0.0,
                "n_components": 1,
            }

        base_tolerance = 3.0 - (2.0 * edge_sensitivity)
        min_tolerance = 10 + 20 * (1 - edge_sensitivity)
        tolerance = max(global_std * base_tolerance, min_tolerance)
        similar_values = roi[np.abs(roi - seed_intensity) < tolerance]

        if len(similar_values) < 10:
            similar_values = roi

        logger.debug(
            f"Neighbourhood statistics: {len(similar_values)}/{len(roi)} samples "
            f"within {tolerance:.1f} of seed {seed_intensity:.1f}"
        )

        return {
            "lower": float(np.percentile(similar_values, 2)),
            "upper": float(np.percentile(similar_values, 98)),
            "mean": float(np.mean(similar_values)),
            "std": float(np.std(similar_values)),
            "n_components": 1,
        }
