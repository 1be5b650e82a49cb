import os
import sys

import pytest

# The modules live at the repository root
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, ROOT_DIR)

from layout import PanelSpec, RoofSection  # noqa: E402


@pytest.fixture(autouse=True)
def offline(monkeypatch):
    """Keep the production estimator off the network unless a test opts in."""
    monkeypatch.delenv("NREL_API_KEY", raising=False)
    monkeypatch.delenv("PVWATTS_TIMEOUT", raising=False)


@pytest.fixture
def tight_panel():
    """1.0 x 1.7 m panel with no gaps, so fits are easy to count by hand."""
    return PanelSpec(width_m=1.0, height_m=1.7, watts=400,
                     row_spacing_m=0.0, column_spacing_m=0.0)


def rectangle_section(section_id, width, height, x0=0.0, y0=0.0, azimuth=180.0):
    return RoofSection(
        id=section_id,
        coordinates=[(x0, y0), (x0 + width, y0), (x0 + width, y0 + height), (x0, y0 + height)],
        azimuth=azimuth,
        geographic=False,
    )
