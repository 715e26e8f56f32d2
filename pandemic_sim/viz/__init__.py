"""pandemic_sim visualization library.

Modules:
  - style: Dark theme colours and helpers
  - epidemic: Agent frames and stacked status history
"""

from pandemic_sim.viz.style import (  # noqa: F401
    DARK_BG,
    DARK_PANEL,
    GRID_COLOR,
    STATUS_COLORS,
    STATUS_LABELS,
    TEXT_COLOR,
    apply_dark_theme,
    dark_figure,
    save_figure,
)

from pandemic_sim.viz.epidemic import (  # noqa: F401
    BAND_ORDER,
    agent_status_keys,
    draw_agents,
    draw_status_history,
    plot_agents,
    plot_status_history,
    status_bands,
)
