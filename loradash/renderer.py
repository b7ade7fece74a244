import plotly.graph_objects as go

from .readings import Metric, from_millis
from .segmenter import DOTTED
from .viewport import VisibleWindow

BACKGROUND = '#071923'
GRID = '#0f3a45'

RANGE_BUTTONS = [
    dict(step='hour', stepmode='backward', count=1, label='1h'),
    dict(step='hour', stepmode='backward', count=6, label='6h'),
    dict(step='day', stepmode='backward', count=1, label='1d'),
    dict(step='all', label='Todo'),
]


class PlotlyRenderer:
    """Maps segmented traces and a visible window to a Plotly figure.

    The renderer keeps no state between calls, so the same input always gives
    an equal figure. ``uirevision`` is pinned per metric to keep the client's
    zoom state across redraws.
    """

    def __init__(self, line_width=2, height=360):
        self.line_width = line_width
        self.height = height

    def _scatter(self, metric, trace):
        line = dict(color=metric.color, width=self.line_width,
                    dash='dot' if trace.style == DOTTED else 'solid')
        scatter = go.Scattergl(
            x=[from_millis(t) for t in trace.x],
            y=list(trace.y),
            mode='lines',
            line=line,
            name=metric.key,
        )
        if trace.style == DOTTED:
            scatter.hoverinfo = 'skip'
        return scatter

    def layout(self, metric, window=None):
        window = window or VisibleWindow()
        xaxis = dict(
            type='date',
            rangeslider=dict(visible=True, bgcolor='#021014'),
            rangeselector=dict(buttons=RANGE_BUTTONS, bgcolor='#04161a', activecolor='#00e5ff'),
            gridcolor=GRID,
            tickcolor=GRID,
        )
        if window.has_x_range:
            xaxis['range'] = [from_millis(window.start_time), from_millis(window.end_time)]
        yaxis = dict(gridcolor=GRID, title=dict(text=metric.unit))
        if window.has_y_range:
            yaxis.update(range=[window.y_min, window.y_max], autorange=False)
        else:
            yaxis['autorange'] = True
        return go.Layout(
            title=dict(text=metric.key, font=dict(color='#00e5ff')),
            plot_bgcolor=BACKGROUND,
            paper_bgcolor=BACKGROUND,
            font=dict(color='#eaf6f8'),
            margin=dict(t=36, r=18, b=36, l=56),
            height=self.height,
            xaxis=xaxis,
            yaxis=yaxis,
            showlegend=False,
            uirevision=metric.key,
        )

    def render(self, metric, traces, window=None):
        metric = Metric.from_key(metric)
        data = [self._scatter(metric, t) for t in traces if len(t)]
        return go.Figure(data=data, layout=self.layout(metric, window))
