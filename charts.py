import io
import logging
from collections import defaultdict

import matplotlib

matplotlib.use('Agg')

import matplotlib.pyplot as plt  # noqa: E402
from matplotlib.dates import DateFormatter, DayLocator  # noqa: E402

from defaults import parse_iso  # noqa: E402

logger = logging.getLogger(__name__)


def _to_png(fig):
    buffer = io.BytesIO()
    try:
        fig.savefig(buffer, format='png')
    finally:
        plt.close(fig)
    return buffer.getvalue()


def appointments_per_day_png(appointments):
    """
    Bar chart of appointments per calendar day (UTC).

    Cancelled appointments and ones with an unreadable datetime are left out.
    Returns PNG bytes, or None when there is nothing to plot.
    """
    counts = defaultdict(int)
    for appt in appointments or []:
        if appt.get('status') == 'cancelled':
            continue
        when = parse_iso(appt.get('datetime'))
        if when is None:
            continue
        counts[when.date()] += 1

    if not counts:
        logger.info("No appointment data available to plot")
        return None

    days = sorted(counts)
    totals = [counts[d] for d in days]

    with plt.style.context('ggplot'):
        fig, ax = plt.subplots(figsize=(10, 6))
        ax.bar(days, totals, width=0.8)
        ax.xaxis.set_major_formatter(DateFormatter('%b %d'))
        ax.xaxis.set_major_locator(DayLocator(interval=1))
        plt.setp(ax.get_xticklabels(), rotation=45, ha='right')
        ax.set_title('Appointments Per Day')
        ax.set_xlabel('Date')
        ax.set_ylabel('Number of Appointments')
        fig.tight_layout()
        return _to_png(fig)


def department_distribution_png(distribution):
    """Horizontal bars of doctors per department, largest on top."""
    if not distribution:
        return None

    names = [row.get('name') or row.get('id') or '—' for row in distribution]
    totals = [row.get('count') or 0 for row in distribution]

    with plt.style.context('ggplot'):
        fig, ax = plt.subplots(figsize=(10, 6))
        ax.barh(names, totals)
        ax.invert_yaxis()
        ax.set_title('Doctors Per Department')
        ax.set_xlabel('Number of Doctors')
        fig.tight_layout()
        return _to_png(fig)
