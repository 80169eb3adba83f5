import functools
import numpy
import matplotlib
import seaborn
from matplotlib import pyplot
from matplotlib import colors
from matplotlib import patches
from matplotlib.backends.backend_pdf import PdfPages
import pandas
from typing import Optional, Union, List, Sequence, Mapping, Text, Any, Callable
from types import MethodType, MappingProxyType

from cn_view import genomics_io
from cn_view.common import ChromosomeNotFoundError
from cn_view.genomics_io import CnScale

Layer = Callable[[pyplot.Axes], Any]
Layers = Union[None, Layer, Sequence[Layer]]
DrawFunc = Callable[[pyplot.Axes], Any]


class Keys:
    chromosome = genomics_io.Keys.chromosome
    coordinate = genomics_io.Keys.coordinate
    cn = genomics_io.Keys.cn
    p_value = genomics_io.Keys.p_value
    chrom = genomics_io.Keys.chrom
    chrom_start = genomics_io.Keys.chrom_start
    chrom_end = genomics_io.Keys.chrom_end
    name = genomics_io.Keys.name
    gie_stain = genomics_io.Keys.gie_stain
    start = genomics_io.Keys.start
    end = genomics_io.Keys.end
    segmean = genomics_io.Keys.segmean
    acen = "acen"


class Default:
    all_chromosomes = genomics_io.Default.all_chromosomes
    title_fontsize = 16
    label_fontsize = 16
    tick_fontsize = 12
    num_palette_colors = 12
    color_palette = "colorblind"
    # Default params overrides for matplotlib
    matplotlib_params = MappingProxyType({
        'savefig.dpi': 150,  # to adjust notebook inline plot size
        'axes.labelsize': label_fontsize,
        'axes.titlesize': title_fontsize,
        'font.size': label_fontsize,
        'legend.fontsize': label_fontsize,
        'xtick.labelsize': tick_fontsize,
        'ytick.labelsize': tick_fontsize,
        'figure.figsize': [9.75, 6]
    })
    use_seaborn = True
    cn_colors = ("#009ACD", "#A6A6A6", "#DC143C")
    point_size = 6
    point_alpha = 1.0
    reference_line_color = "#595959"
    segment_color = "green"
    segment_linewidth = 2.0
    ideogram_txt_angle = 45
    ideogram_txt_size = 5
    ideogram_height_ratio = 1
    main_height_ratio = 4
    ideogram_band_height = 1.0
    unknown_stain_color = "#CCCCCC"
    band_colors = MappingProxyType({
        "gneg": "#FFFFFF",
        "gpos25": "#D9D9D9",
        "gpos33": "#C0C0C0",
        "gpos50": "#A6A6A6",
        "gpos66": "#8C8C8C",
        "gpos75": "#737373",
        "gpos100": "#595959",
        "gvar": "#BFBFBF",
        "stalk": "#A0A0FF",
        "acen": "#CC3333",
    })


def init_plotting_environment(
        matplotlib_params: Mapping[Text, Any] = Default.matplotlib_params,
        use_seaborn: bool = Default.use_seaborn,
        color_palette: str = Default.color_palette,
        num_palette_colors: int = Default.num_palette_colors
):
    # restore defaults if you've been mucking around
    matplotlib.rcParams.update(matplotlib.rcParamsDefault)
    if use_seaborn:
        seaborn.set_theme(color_codes=True)
        seaborn.set_palette(palette=color_palette, n_colors=num_palette_colors)
    matplotlib.rcParams.update(matplotlib_params)


init_plotting_environment()


def next_fig() -> int:
    """
    Get appropriate handle for next figure
    """
    fignums = pyplot.get_fignums()
    if fignums:
        fignums = sorted(fignums)
        n_figs = len(fignums)
        if fignums[-1] == n_figs:
            next_num = n_figs + 1
        else:
            next_num = -1
            for n, fignum in enumerate(fignums, start=1):
                if fignum > n:
                    next_num = n
                    break
            if next_num <= 0:
                raise RuntimeError("Unable to find next figure number")
    else:
        next_num = 1
    return next_num


def rectangle(ax, x_range, y_range, **kwargs):
    """
    Draw rectangle on axis at specified ranges
    """
    ax.add_patch(
        patches.Rectangle((x_range[0], y_range[0]), x_range[1] - x_range[0],
                          y_range[1] - y_range[0], **kwargs)
    )


def _sync_x(self, event):
    """ Event handler for updates to x axis: set x axis to desired limits """
    self.set_xlim(event.get_xlim(), emit=False)


def _sync_y(self, event):
    """ Event handler for updates to y axis: set y axis to desired limits """
    self.set_ylim(event.get_ylim(), emit=False)


# noinspection PyUnresolvedReferences
def sync_axes(axes: Sequence[pyplot.Axes], sync_x: bool = False, sync_y: bool = False, zoom_to_fit_all: bool = False):
    if not (sync_x or sync_y):
        return

    ax0 = axes[0]
    if zoom_to_fit_all:
        if sync_x:
            xlim = ax0.get_xlim()
            for ax2 in axes[1:]:
                xlim2 = ax2.get_xlim()
                xlim = (min(xlim[0], xlim2[0]), max(xlim[1], xlim2[1]))
            for ax in axes:
                ax.set_xlim(*xlim)
        if sync_y:
            ylim = ax0.get_ylim()
            for ax2 in axes[1:]:
                ylim2 = ax2.get_ylim()
                ylim = (min(ylim[0], ylim2[0]), max(ylim[1], ylim2[1]))
            for ax in axes:
                ax.set_ylim(*ylim)

    for ax in axes:
        if sync_x:
            ax.update_xlim = MethodType(_sync_x, ax)
        if sync_y:
            ax.update_ylim = MethodType(_sync_y, ax)

    for ax2 in axes[1:]:
        if sync_x:
            ax0.callbacks.connect("xlim_changed", ax2.update_xlim)
            ax2.callbacks.connect("xlim_changed", ax0.update_xlim)
        if sync_y:
            ax0.callbacks.connect("ylim_changed", ax2.update_ylim)
            ax2.callbacks.connect("ylim_changed", ax0.update_ylim)


def _as_layers(layers: Layers) -> tuple:
    if layers is None:
        return ()
    if callable(layers):
        return layers,
    return tuple(layers)


class Panel:
    """
    One axes worth of plot: a function that draws onto the axes, extra decoration layers applied afterwards, and the
    panel's relative height when panels are stacked.
    """
    __slots__ = ("draw", "layers", "height_ratio")

    def __init__(self, draw: DrawFunc, layers: Layers = None, height_ratio: float = 1):
        self.draw = draw
        self.layers = _as_layers(layers)
        self.height_ratio = height_ratio

    def with_height_ratio(self, height_ratio: float) -> "Panel":
        return Panel(self.draw, layers=self.layers, height_ratio=height_ratio)

    def render(self, ax: pyplot.Axes):
        self.draw(ax)
        for layer in self.layers:
            layer(ax)


class Graphic:
    """
    Deferred description of a figure: panels laid out in a grid of num_columns columns. If share_x is True, all panels
    share the same x range (used to register an ideogram with the plot beneath it). The matplotlib figure is only built
    when .figure is first requested.
    """
    __slots__ = ("panels", "num_columns", "share_x", "_figure")

    def __init__(self, panels: Sequence[Panel], num_columns: int = 1, share_x: bool = False):
        self.panels = tuple(panels)
        self.num_columns = max(1, min(num_columns, len(self.panels)))
        self.share_x = share_x
        self._figure = None

    @property
    def num_rows(self) -> int:
        return int(numpy.ceil(len(self.panels) / self.num_columns))

    @property
    def figure(self) -> pyplot.Figure:
        if self._figure is None:
            self._figure = self._make_figure()
        return self._figure

    @property
    def axes(self) -> List[pyplot.Axes]:
        return self.figure.axes

    def _make_figure(self) -> pyplot.Figure:
        fig = pyplot.figure(num=next_fig(), constrained_layout=True)
        height_ratios = [panel.height_ratio for panel in self.panels] if self.num_columns == 1 else None
        gridspec = fig.add_gridspec(self.num_rows, self.num_columns, height_ratios=height_ratios)
        axes = []
        for index, panel in enumerate(self.panels):
            row, column = divmod(index, self.num_columns)
            ax = fig.add_subplot(gridspec[row, column])
            panel.render(ax)
            axes.append(ax)
        if self.share_x and len(axes) > 1:
            sync_axes(axes, sync_x=True, zoom_to_fit_all=True)
        return fig


def _band_color(stain: str) -> str:
    return Default.band_colors.get(stain.lower(), Default.unknown_stain_color)


def plot_ideogram(
        ax: pyplot.Axes,
        cytobands: pandas.DataFrame,
        chromosome: Optional[str] = None,
        txt_angle: float = Default.ideogram_txt_angle,
        txt_size: float = Default.ideogram_txt_size,
        band_height: float = Default.ideogram_band_height
):
    """
    Draw the bands of one chromosome as a horizontal bar, with band names written above it. Centromere ("acen")
    bands are drawn as triangles pointing at the centromere.
    Args:
        ax: pyplot.Axes
            Axes to draw on
        cytobands: pandas.DataFrame
            Cytobands of a single chromosome
        chromosome: str or None
            Used as the axes title if not None
        txt_angle: float
            Rotation (degrees) of the band labels
        txt_size: float
            Font size (points) of the band labels
        band_height: float
            Height of the bar in data units
    """
    for start, end, name, stain in zip(
            cytobands[Keys.chrom_start], cytobands[Keys.chrom_end], cytobands[Keys.name], cytobands[Keys.gie_stain]
    ):
        if stain == Keys.acen:
            # q-arm centromere bands point back toward the p arm
            if name.startswith('q'):
                vertices = [(end, 0), (end, band_height), (start, band_height / 2)]
            else:
                vertices = [(start, 0), (start, band_height), (end, band_height / 2)]
            ax.add_patch(patches.Polygon(vertices, closed=True, facecolor=_band_color(stain), edgecolor="none"))
        else:
            rectangle(ax, (start, end), (0, band_height), facecolor=_band_color(stain), edgecolor="black",
                      linewidth=0.15)
        ax.text((start + end) / 2, band_height * 1.1, name, rotation=txt_angle, fontsize=txt_size,
                ha="left", va="bottom", rotation_mode="anchor")

    if not cytobands.empty:
        ax.set_xlim(cytobands[Keys.chrom_start].min(), cytobands[Keys.chrom_end].max())
    ax.set_ylim(0, band_height * 2)
    ax.set_yticks([])
    ax.set_xticks([])
    ax.grid(False)
    ax.set_facecolor('w')
    if chromosome is not None:
        ax.set_title(chromosome)


def plot_copy_number(
        ax: pyplot.Axes,
        calls: pandas.DataFrame,
        boundary_points: pandas.DataFrame,
        segments: Optional[pandas.DataFrame] = None,
        cn_scale: CnScale = CnScale.Absolute,
        segment_color: Optional[str] = None,
        title: Optional[str] = None,
        point_size: float = Default.point_size,
        cn_colors: Sequence[str] = Default.cn_colors
):
    """
    Scatter copy number calls of one chromosome, coloured by copy number diverging from the copy-neutral value.
    Args:
        ax: pyplot.Axes
            Axes to draw on
        calls: pandas.DataFrame
            Normalized calls. If "p_value" is present, point opacity is 1 - p_value.
        boundary_points: pandas.DataFrame
            Invisible points that force the x range to cover the chromosome
        segments: pandas.DataFrame or None
            Segment calls drawn as horizontal lines at their segmean
        cn_scale: CnScale
            Sets the neutral copy number used for the colour midpoint and the reference line
        segment_color: str or None
            Colour of segment lines. If None, use Default.segment_color
        title: str or None
            Axes title
    """
    neutral = cn_scale.neutral_copy_number
    if not boundary_points.empty:
        ax.scatter(boundary_points[Keys.coordinate], numpy.full(len(boundary_points), neutral), alpha=0)

    if not calls.empty:
        cn = calls[Keys.cn].to_numpy()
        norm = colors.TwoSlopeNorm(vcenter=neutral, vmin=min(cn.min(), neutral - 1), vmax=max(cn.max(), neutral + 1))
        alpha = numpy.clip(1.0 - calls[Keys.p_value].to_numpy(), 0.0, 1.0) if Keys.p_value in calls.columns \
            else Default.point_alpha
        ax.scatter(
            calls[Keys.coordinate], cn, c=cn, norm=norm, alpha=alpha, s=point_size, edgecolors="none",
            cmap=colors.LinearSegmentedColormap.from_list("copy_number", list(cn_colors))
        )

    ax.axhline(neutral, color=Default.reference_line_color, linestyle="--", linewidth=1)
    if segments is not None and not segments.empty:
        ax.hlines(segments[Keys.segmean], segments[Keys.start], segments[Keys.end],
                  colors=Default.segment_color if segment_color is None else segment_color,
                  linewidth=Default.segment_linewidth)

    ax.set_ylabel("Copy Number Difference" if cn_scale == CnScale.Relative else "Absolute Copy Number")
    ax.set_xlabel("Coordinate")
    if title is not None:
        ax.set_title(title)


class MatplotlibRenderer:
    """
    Builds Graphic objects for copy number views. Graphics are only turned into matplotlib figures when drawn or when
    their .figure is requested.
    """
    def build_main(
            self,
            calls: pandas.DataFrame,
            boundary_points: pandas.DataFrame,
            segments: Optional[pandas.DataFrame] = None,
            chromosome: str = genomics_io.Default.chromosome,
            cn_scale: CnScale = CnScale.Absolute,
            layers: Layers = None,
            segment_color: Optional[str] = None
    ) -> Graphic:
        """ One panel for a single chromosome, or one facet per chromosome if chromosome is "all" """
        draw_panel = functools.partial(plot_copy_number, cn_scale=cn_scale, segment_color=segment_color)
        if chromosome != Default.all_chromosomes:
            return Graphic([Panel(
                functools.partial(draw_panel, calls=calls, boundary_points=boundary_points, segments=segments,
                                  title=chromosome),
                layers=layers
            )])

        chromosomes = genomics_io.sort_chromosomes(
            calls[Keys.chromosome].tolist() + boundary_points[Keys.chromosome].tolist()
        )
        panels = [
            Panel(
                functools.partial(
                    draw_panel,
                    calls=genomics_io.subset_chromosome(calls, facet_chromosome),
                    boundary_points=genomics_io.subset_chromosome(boundary_points, facet_chromosome),
                    segments=None if segments is None else genomics_io.subset_chromosome(segments, facet_chromosome),
                    title=facet_chromosome
                ),
                layers=layers
            )
            for facet_chromosome in chromosomes
        ]
        return Graphic(panels, num_columns=int(numpy.ceil(numpy.sqrt(len(panels)))))

    def build_ideogram(
            self,
            cytobands: pandas.DataFrame,
            chromosome: str,
            txt_angle: float = Default.ideogram_txt_angle,
            txt_size: float = Default.ideogram_txt_size,
            layers: Layers = None
    ) -> Graphic:
        chromosome_bands = genomics_io.subset_chromosome(cytobands, chromosome)
        if chromosome_bands.empty:
            raise ChromosomeNotFoundError(chromosome)
        return Graphic([Panel(
            functools.partial(plot_ideogram, cytobands=chromosome_bands, chromosome=chromosome,
                              txt_angle=txt_angle, txt_size=txt_size),
            layers=layers
        )])

    def align(
            self,
            top: Graphic,
            bottom: Graphic,
            height_ratios: Sequence[float] = (Default.ideogram_height_ratio, Default.main_height_ratio)
    ) -> Graphic:
        """ Stack top above bottom in one column, sharing the x axis """
        top_ratio, bottom_ratio = height_ratios
        return Graphic(
            [panel.with_height_ratio(top_ratio) for panel in top.panels]
            + [panel.with_height_ratio(bottom_ratio) for panel in bottom.panels],
            num_columns=1, share_x=True
        )

    def draw(self, graphic: Graphic) -> Graphic:
        graphic.figure.canvas.draw_idle()
        pyplot.show(block=False)
        return graphic


def save_figures(figure_save_file: str, *figures: Optional[pyplot.Figure]):
    """
    Save one or more figures into a single pdf
    Args:
        figure_save_file: str
            Path to save pdf
        *figures: pyplot.Figure or None
            Additional arguments are saved as figures in the pdf.
            As a convenience, this function skips figures that are None
    """
    with PdfPages(figure_save_file) as pdf:
        for fig in figures:
            if fig is None:
                continue
            pdf.savefig(fig, bbox_inches="tight")
