"""Notebook pane that applies a widget's sizing policy to a plotly FigureWidget.

A plotly ``FigureWidget`` does not follow its container on its own. The pane
places it in a flex box sized from the widget's declared width/height (or
the sizing policy defaults) together with a hidden ``FillContainerDriver``
whose frontend observes the box and asks plotly.js to resize.

Typical usage
-------------
>>> from plotlybind import create_figure  # doctest: +SKIP
>>> pane = create_figure(df, x=formula("a"), y=formula("b")).to_widget()  # doctest: +SKIP
>>> pane.widget  # doctest: +SKIP
"""

from __future__ import annotations

from typing import Any, Optional, Union

import anywidget
import ipywidgets as W
import traitlets

from .widget import SizingPolicy

__all__ = ["FillContainerDriver", "FigurePane"]


class FillContainerDriver(anywidget.AnyWidget):
    """Hidden frontend helper that keeps a plotly.js plot filling its parent.

    The driver resizes when the parent box changes size and when plotly.js
    inserts its DOM. ``fill`` mirrors ``SizingPolicy.browser_fill``; when
    False the plot keeps its own layout size.
    """

    fill = traitlets.Bool(True).tag(sync=True)
    debounce_ms = traitlets.Int(60).tag(sync=True)

    _esm = r"""
    function findPlotEl(host) {
      return host ? host.querySelector(".js-plotly-plot") : null;
    }

    async function plotlyResize(plotEl) {
      const P = window.Plotly;
      if (P && P.Plots && typeof P.Plots.resize === "function") {
        try { return await P.Plots.resize(plotEl); } catch (e) {}
      }
      window.dispatchEvent(new Event("resize"));
    }

    export default {
      render({ model, el }) {
        el.style.display = "none";
        const host = el.parentElement;
        if (!host) return;

        let timer = null;

        function fit() {
          if (!model.get("fill")) return;
          const plotEl = findPlotEl(host);
          if (!plotEl) return;
          const r = host.getBoundingClientRect();
          if (!(r.width > 0 && r.height > 0)) return;
          plotEl.style.width = "100%";
          plotEl.style.minWidth = "0";
          plotEl.style.height = `${Math.round(r.height)}px`;
          plotlyResize(plotEl);
        }

        function schedule() {
          if (timer) clearTimeout(timer);
          timer = setTimeout(fit, Number(model.get("debounce_ms")) || 60);
        }

        const ro = new ResizeObserver(schedule);
        ro.observe(host);
        const mo = new MutationObserver(() => { if (findPlotEl(host)) schedule(); });
        mo.observe(host, { childList: true, subtree: true });

        const onMsg = (msg) => { if (msg && msg.type === "reflow") schedule(); };
        model.on("msg:custom", onMsg);
        model.on("change:fill", schedule);
        schedule();

        return () => {
          if (timer) clearTimeout(timer);
          ro.disconnect();
          mo.disconnect();
          model.off("msg:custom", onMsg);
          model.off("change:fill", schedule);
        };
      }
    };
    """

    def reflow(self) -> None:
        """Ask the frontend to refit the plot."""
        self.send({"type": "reflow"})


def _css(value: Union[int, float, str, None]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return f"{value}px"
    return str(value)


class FigurePane:
    """Sized container for a plotly ``FigureWidget``.

    Parameters
    ----------
    figure_widget : ipywidgets.Widget
        Usually a ``plotly.graph_objects.FigureWidget``.
    sizing_policy : SizingPolicy
        Defaults used when no explicit size is declared.
    width, height : number or str, optional
        Declared size; numbers are pixels.

    Attributes
    ----------
    driver : FillContainerDriver
        The hidden resize driver.
    """

    def __init__(
        self,
        figure_widget: W.Widget,
        sizing_policy: SizingPolicy = SizingPolicy(),
        *,
        width: Any = None,
        height: Any = None,
    ) -> None:
        self.sizing_policy = sizing_policy
        self.driver = FillContainerDriver(fill=bool(sizing_policy.browser_fill))
        self._box = W.Box(
            [figure_widget, self.driver],
            layout=W.Layout(
                width=_css(width) or _css(sizing_policy.default_width),
                height=_css(height) or _css(sizing_policy.default_height),
                min_width="0",
                display="flex",
                flex_flow="column",
                overflow="hidden",
            ),
        )

    @property
    def widget(self) -> W.Widget:
        """The container to display or embed in other ipywidgets layouts."""
        return self._box

    def reflow(self) -> None:
        """Refit the plot after layout changes made from Python."""
        self.driver.reflow()
