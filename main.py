"""
FPL Insights Backend: entry point and re-exports.

Code lives in fpl_insights/ modules:
- config.py:      MODEL_CONFIG + dataclass config sections
- constants.py:   Lookup tables and numeric helpers
- models.py:      Pydantic input schemas, enums, result dataclasses
- cache.py:       ExpiringCache and SnapshotStore
- calculators.py: Team strength, implied goals, attacking sources, points mapper
- snapshot.py:    ProjectionSnapshot, team results derivation, JSON loading
- services.py:    Minutes, baseline, confidence, fixture/player/team projections
- planner.py:     Transfer recommendations
- endpoints.py:   FastAPI app + API endpoints

Tests import from `main`; the star-imports re-export everything.
"""

from fpl_insights.config import *       # noqa: F401,F403
from fpl_insights.constants import *    # noqa: F401,F403
from fpl_insights.models import *       # noqa: F401,F403
from fpl_insights.cache import *        # noqa: F401,F403
from fpl_insights.calculators import *  # noqa: F401,F403
from fpl_insights.snapshot import *     # noqa: F401,F403
from fpl_insights.services import *     # noqa: F401,F403
from fpl_insights.planner import *      # noqa: F401,F403
from fpl_insights.endpoints import app  # noqa: F401

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
