"""Pre-fit linear models for the Maine forest height maps.

Both models were fit on forest-height samples from Maine LiDAR paired with
2024 annual embeddings. Coefficients are listed in A00..A63 order.
"""

from __future__ import annotations

from typing import Dict

from ..errors import ConfigurationError
from .models import EMBEDDING_BANDS, LinearModel


MAINE_LINEAR_2024 = LinearModel(
    name="maine_linear_2024",
    intercept=11.53513,
    coefficients=(
        1.45957, -0.90620, -2.88325, -7.73290, 5.60280, -6.12525, -6.58494, -0.56557,
        3.58247, -0.23105, -3.10215, 5.34825, 4.31927, 1.80639, -1.06402, 2.28553,
        -4.42215, 3.02548, 2.75686, -0.04212, 9.70114, 1.86458, 3.26989, 3.10177,
        17.52088, 5.64324, 2.77510, 1.24903, -6.37476, -7.97029, 3.29335, 7.40333,
        -6.37638, -8.09604, -1.09247, 5.48409, -6.23048, 1.38244, 5.78955, -11.91846,
        -17.61726, 0.25435, 7.09169, 5.12470, -3.13201, 3.02626, 7.85892, 10.35282,
        -9.31267, 13.52583, -9.03495, 0.37619, -1.82759, -0.00000, 3.65662, 13.14257,
        6.72767, 4.97101, -0.13353, 5.49163, 12.52566, 0.88531, 5.26727, -9.83451,
    ),
    bands=EMBEDDING_BANDS,
)

# ElasticNet fit; applied to the whole state without a land-cover mask.
MAINE_ELASTICNET_2024 = LinearModel(
    name="maine_elasticnet_2024",
    intercept=8.16020,
    coefficients=(
        6.34034, -5.13683, -2.18111, -1.61492, 2.02927, -5.20815, -14.01099, 3.89481,
        1.96547, -1.37582, -2.55338, 7.25312, 5.16031, 1.32938, 0.78591, 3.99678,
        -3.52214, 5.83732, 1.38374, 6.14284, 11.92806, 2.53979, 2.13103, -1.96898,
        18.66803, 7.02725, -1.70710, 2.33185, -5.50539, -3.37021, 10.45325, -0.30094,
        1.00722, -7.52678, 2.55469, 1.60619, -9.52485, -0.06286, 1.95546, -15.01173,
        -9.00199, -1.34967, 11.97590, 14.66658, 3.16185, 2.55333, 5.52506, 1.56971,
        -7.21744, 12.31672, -4.91304, 3.14709, 6.30731, -2.82525, 10.49843, 18.04515,
        1.09810, 4.05667, -6.02932, 5.38651, 11.73387, -4.84238, 4.66655, -7.03959,
    ),
    bands=EMBEDDING_BANDS,
)

PRESETS: Dict[str, LinearModel] = {
    MAINE_LINEAR_2024.name: MAINE_LINEAR_2024,
    MAINE_ELASTICNET_2024.name: MAINE_ELASTICNET_2024,
}


def get_preset(name: str) -> LinearModel:
    """Return the named preset model.

    Raises:
        ConfigurationError: If ``name`` is not a known preset.
    """
    try:
        return PRESETS[name]
    except KeyError:
        raise ConfigurationError(
            f"model.preset must be one of {sorted(PRESETS)}, got '{name}'"
        ) from None


__all__ = [
    "MAINE_LINEAR_2024",
    "MAINE_ELASTICNET_2024",
    "PRESETS",
    "get_preset",
]
