import io
import base64
from typing import Any, Dict, Optional

import matplotlib.pyplot as plt
import matplotlib.patches as mpatches
import numpy as np
import plotly.graph_objects as go

from .config import DEFAULT_THEME, THEMES


def _theme(theme: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return theme if theme is not None else THEMES[DEFAULT_THEME]


def _zone_colors(layout_data: Dict[str, Any]) -> Dict[str, str]:
    return {zone["name"]: zone["color"] for zone in layout_data["zones"]}


def create_time_scaled_diagram(layout_data: Dict[str, Any], theme: Optional[Dict[str, Any]] = None) -> plt.Figure:
    """
    Create a static time-scaled network preview with Matplotlib.
    Expects layout_data from ScheduleLayout.to_dict().
    """
    theme = _theme(theme)
    activities = layout_data["activities"]
    if not activities:
        fig, ax = plt.subplots(figsize=(10, 6))
        ax.text(0.5, 0.5, 'No activities to display', ha='center', va='center', fontsize=14)
        ax.axis('off')
        return fig

    total_rows = layout_data["total_rows"]
    duration = layout_data["project_duration"]
    zone_colors = _zone_colors(layout_data)

    fig, ax = plt.subplots(figsize=(max(12, duration * 0.12), max(4, total_rows * 0.6)))

    # Zone bands, alternating background
    for i, zone in enumerate(layout_data["zones"]):
        ax.axhspan(zone["start_row"] - 0.5, zone["end_row"] - 0.5,
                   color=theme["surface"] if i % 2 == 0 else theme["zone_bg"], zorder=0)
        ax.axhline(zone["end_row"] - 0.5, color=theme["zone_border"], linestyle='--', linewidth=1)
        ax.text(-0.01, (zone["start_row"] + zone["end_row"] - 1) / 2, zone["name"],
                transform=ax.get_yaxis_transform(), ha='right', va='center',
                fontweight='bold', color=zone["color"])

    rows = {a["id"]: a["global_row_index"] for a in activities}

    for link in layout_data["links"]:
        x0, y0 = link["from_day"], link["from_row"]
        x1, y1 = link["to_day"], link["to_row"]
        if link["kind"] == "free_float":
            xs = np.linspace(x0, x1, max(2, int((x1 - x0) * 4)))
            ax.plot(xs, y0 + 0.08 * np.sin(xs * np.pi * 2), color=theme["dependency"], linewidth=1)
        if y0 != y1:
            ax.annotate('', xy=(x1, y1), xytext=(x1, y0),
                        arrowprops=dict(arrowstyle='->', color=theme["dependency"], linestyle='dashed'))

    for act in activities:
        row = rows[act["id"]]
        color = theme["critical"] if act["is_critical"] else zone_colors.get(act["zone"], theme["normal"])
        start, finish = act["early_start"], act["early_finish"]
        if act["kind"] == "Milestone" or finish == start:
            marker = 'D' if act["kind"] == "Milestone" else 'o'
            ax.plot([start], [row], marker=marker, markersize=9, markerfacecolor='white', markeredgecolor=color)
        else:
            style = 'dashed' if act["kind"] == "Virtual" else 'solid'
            ax.annotate('', xy=(finish, row), xytext=(start, row),
                        arrowprops=dict(arrowstyle='-|>', color=color, linewidth=2, linestyle=style))
            ax.plot([start, finish], [row, row], 'o', markersize=6, markerfacecolor='white', markeredgecolor='black')
        ax.text((start + finish) / 2, row - 0.2, act["name"], ha='center', va='bottom', fontsize=8, color=theme["ink"])
        ax.text((start + finish) / 2, row + 0.2, f"{act['duration']}d", ha='center', va='top', fontsize=7,
                color=theme["muted"])

    major_ticks = np.arange(0, duration + 1, max(1, int(duration / 20)))
    ax.set_xticks(major_ticks)
    ax.set_xlim(-1, duration + 1)
    ax.set_ylim(total_rows - 0.5, -0.5)
    ax.set_yticks([])
    ax.set_xlabel('Time (Days)', fontsize=12)
    ax.grid(axis='x', linestyle='--', alpha=0.5, color=theme["grid"])
    ax.set_axisbelow(True)

    legend_elements = [
        mpatches.Patch(color=theme["critical"], label='Critical Activity'),
        mpatches.Patch(color=theme["normal"], label='Non-Critical Activity'),
        plt.Line2D([0], [0], color=theme["dependency"], linewidth=1, label='Free Float'),
    ]
    ax.legend(handles=legend_elements, loc='upper right', fontsize=8)
    ax.set_title('Time-Scaled Network Diagram', fontsize=14, fontweight='bold')
    plt.tight_layout()
    return fig


def create_plotly_layout(layout_data: Dict[str, Any], theme: Optional[Dict[str, Any]] = None) -> go.Figure:
    """
    Create an interactive time-scaled network preview using Plotly.
    """
    theme = _theme(theme)
    activities = layout_data["activities"]
    if not activities:
        fig = go.Figure()
        fig.add_annotation(text="No activities to display", x=0.5, y=0.5, showarrow=False)
        fig.update_layout(height=400)
        return fig

    zone_colors = _zone_colors(layout_data)
    fig = go.Figure()

    for i, zone in enumerate(layout_data["zones"]):
        fig.add_hrect(y0=zone["start_row"] - 0.5, y1=zone["end_row"] - 0.5, line_width=0,
                      fillcolor=theme["surface"] if i % 2 == 0 else theme["zone_bg"], layer="below",
                      annotation_text=zone["name"], annotation_position="top left")

    link_x, link_y = [], []
    for link in layout_data["links"]:
        link_x.extend([link["from_day"], link["to_day"], link["to_day"], None])
        link_y.extend([link["from_row"], link["from_row"], link["to_row"], None])
    fig.add_trace(go.Scatter(x=link_x, y=link_y, mode="lines", hoverinfo="none", name="Dependencies",
                             line=dict(width=1, color=theme["dependency"], dash="dot")))

    for act in activities:
        color = theme["critical"] if act["is_critical"] else zone_colors.get(act["zone"], theme["normal"])
        fig.add_trace(go.Scatter(
            x=[act["early_start"], act["early_finish"]],
            y=[act["global_row_index"], act["global_row_index"]],
            mode="lines+markers",
            name=act["id"],
            showlegend=False,
            line=dict(width=3, color=color, dash="dash" if act["kind"] == "Virtual" else "solid"),
            marker=dict(size=8, symbol="diamond" if act["kind"] == "Milestone" else "circle",
                        color="white", line=dict(width=1, color="black")),
            hovertext=(
                f"{act['id']} - {act['name']}<br>Zone: {act['zone']}<br>"
                f"Dur: {act['duration']}<br>ES/EF: {act['early_start']}/{act['early_finish']}<br>"
                f"LS/LF: {act['late_start']}/{act['late_finish']}<br>TF: {act['total_float']}"
            ),
            hoverinfo="text",
        ))

    fig.update_yaxes(autorange="reversed", showticklabels=False, showgrid=False, zeroline=False)
    fig.update_xaxes(title="Day", gridcolor=theme["grid"])
    fig.update_layout(
        title="Interactive Time-Scaled Network",
        height=max(400, layout_data["total_rows"] * 40),
        margin=dict(l=120, r=20, t=40, b=20),
        template="plotly_white",
        paper_bgcolor=theme["surface"],
        plot_bgcolor=theme["surface"],
        font=dict(color=theme["ink"]),
    )
    return fig


def fig_to_base64(fig: plt.Figure) -> str:
    buffer = io.BytesIO()
    fig.savefig(buffer, format="png", dpi=180, bbox_inches="tight")
    buffer.seek(0)
    encoded = base64.b64encode(buffer.read()).decode("utf-8")
    buffer.close()
    return encoded
