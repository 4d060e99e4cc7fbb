"""PNG chart of bucketed activity history."""

import io

from matplotlib.figure import Figure

from fittrack.aggregation import Bucket
from fittrack.errors import ValidationError

METRICS = {
    'duration': ('Duration (min)', '#00c9ff'),
    'distance': ('Distance (km)', '#0091ff'),
    'steps': ('Steps', '#ff914d'),
}


def render_bucket_chart(buckets: list[Bucket], metric: str = 'duration', title: str = '') -> bytes:
    """Area chart of one metric per period, returned as PNG bytes."""
    if metric not in METRICS:
        raise ValidationError(f"Unknown metric '{metric}' (use one of {', '.join(METRICS)}).")
    label, color = METRICS[metric]
    fig = Figure(figsize=(7.5, 4.0), dpi=100, facecolor='white')
    ax = fig.add_subplot(111)
    if buckets:
        names = [b.name for b in buckets]
        values = [getattr(b, metric) for b in buckets]
        positions = list(range(len(names)))
        ax.fill_between(positions, values, color=color, alpha=0.35)
        ax.plot(positions, values, color=color, marker='o', linewidth=1.5)
        ax.set_xticks(positions)
        ax.set_xticklabels(names, rotation=30, ha='right')
        ax.set_ylim(bottom=0)
    else:
        ax.text(0.5, 0.5, 'No data', ha='center', va='center', transform=ax.transAxes, color='#666')
        ax.set_xticks([])
    ax.set_title(title or label, fontsize=10)
    ax.set_ylabel(label, fontsize=8)
    ax.tick_params(axis='x', labelsize=8)
    ax.tick_params(axis='y', labelsize=8)
    ax.grid(axis='y', linestyle='--', alpha=0.7)
    fig.tight_layout(pad=2.0)
    buf = io.BytesIO()
    fig.savefig(buf, format='png')
    return buf.getvalue()
