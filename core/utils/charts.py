"""
Utilidades para generación de gráficos con Matplotlib y Seaborn.
Centraliza toda la lógica de visualización de los reportes exportados.
Optimizado para entornos sin interfaz gráfica (Agg backend).

Los PNG se generan sin metadatos de software ni fecha para que el mismo
reporte produzca siempre los mismos bytes.
"""
import base64
import io
import itertools
import logging

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns

from core.models_analytics import KIND_CATEGORICAL, KIND_NUMERIC
from core.utils.helpers import format_number

logger = logging.getLogger(__name__)


class ChartGenerator:
    """
    Generador centralizado de gráficos.
    Devuelve PNG en bytes; ``to_data_uri`` los adapta para plantillas HTML.
    """

    FRIENDLY_PALETTE = [
        '#6366f1', '#10b981', '#f59e0b', '#ec4899', '#8b5cf6', '#06b6d4',
        '#f43f5e', '#84cc16', '#3b82f6', '#f97316', '#14b8a6', '#d946ef',
        '#64748b', '#ef4444', '#22c55e', '#eab308', '#a855f7', '#0ea5e9',
    ]

    THEME = {
        'text': '#374151',
        'grid': '#9ca3af',
        'primary': '#6366f1',
        'edge_contrast': '#ffffff',
    }

    BASE_STYLE = {
        'font.family': 'sans-serif',
        'font.sans-serif': ['DejaVu Sans', 'sans-serif'],
        'font.size': 12,
        'axes.labelsize': 12,
        'axes.titlesize': 14,
        'xtick.labelsize': 11,
        'ytick.labelsize': 11,
        'axes.unicode_minus': False,
        'axes.linewidth': 0,
        # hashes de paths deterministas en el PNG
        'svg.hashsalt': 'fieldpulse',
    }

    OTHER_LABEL = 'Other'

    @classmethod
    def _apply_style(cls):
        theme = cls.THEME
        plt.style.use('default')
        plt.rcParams.update({
            **cls.BASE_STYLE,
            'text.color': theme['text'],
            'axes.labelcolor': theme['text'],
            'xtick.color': theme['text'],
            'ytick.color': theme['text'],
            'axes.facecolor': 'white',
            'figure.facecolor': 'white',
            'savefig.facecolor': 'white',
            'grid.color': theme['grid'],
            'grid.linestyle': ':',
            'grid.linewidth': 1.0,
            'grid.alpha': 0.4,
        })
        sns.set_style("whitegrid", {
            "grid.color": theme['grid'],
            "text.color": theme['text'],
            "axes.labelcolor": theme['text'],
            "xtick.color": theme['text'],
            "ytick.color": theme['text'],
        })
        return theme

    @classmethod
    def _setup_figure(cls, figsize=(7, 4)):
        theme = cls._apply_style()
        fig, ax = plt.subplots(figsize=figsize)
        return fig, ax, theme

    @staticmethod
    def _get_colors(n_colors):
        return [c for _, c in zip(range(n_colors), itertools.cycle(ChartGenerator.FRIENDLY_PALETTE))]

    @staticmethod
    def _fig_to_png(fig, dpi=110):
        try:
            buf = io.BytesIO()
            fig.savefig(
                buf,
                format="png",
                dpi=dpi,
                bbox_inches='tight',
                pad_inches=0.1,
                metadata={'Software': None},
            )
            return buf.getvalue()
        except Exception:
            logger.exception("Error rendering chart")
            return None
        finally:
            plt.close(fig)

    @staticmethod
    def to_data_uri(png_bytes):
        if not png_bytes:
            return None
        return "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")

    @classmethod
    def _optimize_data_visuals(cls, labels, counts, limit=15):
        """Keeps the ``limit - 1`` largest entries and folds the rest into 'Other'."""
        if not labels or not counts:
            return [], []

        data = sorted(zip(labels, counts), key=lambda x: x[1], reverse=True)
        if len(data) <= limit:
            l, c = zip(*data)
            return list(l), list(c)

        top_data = data[: limit - 1]
        other_count = sum(item[1] for item in data[limit - 1:])
        final_labels = [item[0] for item in top_data] + [cls.OTHER_LABEL]
        final_counts = [item[1] for item in top_data] + [other_count]
        return final_labels, final_counts

    # ==========================
    # TIPOS DE GRÁFICOS
    # ==========================

    @classmethod
    def generate_donut_chart(cls, labels, counts, title=None):
        f_labels, f_counts = cls._optimize_data_visuals(labels, counts, limit=12)
        if not f_labels:
            return None

        fig, ax, theme = cls._setup_figure(figsize=(7, 5.5))
        wedges, _, _ = ax.pie(
            f_counts,
            labels=None,
            autopct='%1.0f%%',
            startangle=90,
            colors=cls._get_colors(len(f_labels)),
            pctdistance=0.78,
            wedgeprops={'linewidth': 0},
            textprops=dict(color='#ffffff', fontsize=11, weight='bold'),
        )
        fig.gca().add_artist(plt.Circle((0, 0), 0.50, fc='white', linewidth=0))
        ax.legend(
            wedges,
            [str(l)[:30] for l in f_labels],
            title="Options",
            loc="center left",
            bbox_to_anchor=(1, 0, 0.5, 1),
            frameon=False,
            fontsize=11,
        )
        if title:
            ax.set_title(title, fontsize=14, weight='bold', pad=15, color=theme['text'])
        return cls._fig_to_png(fig)

    @classmethod
    def generate_horizontal_bar_chart(cls, labels, counts, title):
        f_labels, f_counts = cls._optimize_data_visuals(labels, counts, limit=20)
        if not f_labels:
            return None

        height = max(3, len(f_labels) * 0.6)
        fig, ax, theme = cls._setup_figure(figsize=(9, height))

        y_pos = range(len(f_labels))
        bars = ax.barh(
            y_pos,
            f_counts,
            color=cls._get_colors(len(f_labels)),
            alpha=0.95,
            height=0.8,
            zorder=3,
        )
        ax.set_yticks(y_pos)
        ax.set_yticklabels([str(l)[:40] for l in f_labels], fontsize=12, color=theme['text'])
        ax.invert_yaxis()
        ax.set_title(title, fontsize=15, weight='bold', pad=20, color=theme['text'])

        for side in ('top', 'right', 'bottom', 'left'):
            ax.spines[side].set_visible(False)
        ax.tick_params(axis='x', bottom=False, labelbottom=False)
        ax.tick_params(axis='y', left=False)
        ax.bar_label(bars, fmt='%d', padding=8, fontsize=12, weight='bold', color=theme['text'])

        fig.tight_layout()
        return cls._fig_to_png(fig)

    @classmethod
    def generate_vertical_bar_chart(cls, labels, counts, title):
        if not labels:
            return None

        fig_width = max(6, len(labels) * 0.9)
        fig, ax, theme = cls._setup_figure(figsize=(fig_width, 4.5))

        short_labels = [str(l)[:15] for l in labels]
        bars = ax.bar(
            short_labels,
            counts,
            color=cls._get_colors(len(labels)),
            alpha=0.95,
            width=0.7,
            zorder=3,
        )
        ax.set_title(title, fontsize=15, weight='bold', pad=20, color=theme['text'])
        ax.spines['top'].set_visible(False)
        ax.spines['right'].set_visible(False)
        ax.spines['left'].set_visible(False)
        ax.spines['bottom'].set_color(theme['grid'])
        ax.grid(axis='y', linestyle='--', alpha=0.4, color=theme['grid'], zorder=0)
        ax.tick_params(axis='x', colors=theme['text'], length=0, labelsize=11)
        ax.tick_params(axis='y', left=False, labelleft=False)
        ax.bar_label(bars, fmt='%d', padding=4, fontsize=12, weight='bold', color=theme['text'])

        fig.tight_layout()
        return cls._fig_to_png(fig)

    @classmethod
    def generate_timeline_chart(cls, labels, counts, title):
        if not labels:
            return None

        fig, ax, theme = cls._setup_figure(figsize=(9, 3.5))
        x = range(len(labels))
        ax.plot(x, counts, color=theme['primary'], linewidth=2.5, marker='o', zorder=3)
        ax.fill_between(x, counts, color=theme['primary'], alpha=0.15)
        ax.set_xticks(list(x))
        ax.set_xticklabels(labels, fontsize=10)
        ax.set_ylim(bottom=0)
        ax.set_title(title, fontsize=14, weight='bold', pad=15, color=theme['text'])
        for side in ('top', 'right'):
            ax.spines[side].set_visible(False)

        fig.tight_layout()
        return cls._fig_to_png(fig)

    # ==========================
    # ATAJOS POR ENTIDAD
    # ==========================

    @classmethod
    def for_field_analysis(cls, analysis):
        """PNG adecuado al tipo del campo, o None si no hay nada que graficar."""
        if analysis.kind == KIND_CATEGORICAL and analysis.categories:
            labels = [c.option_label for c in analysis.categories]
            counts = [c.count for c in analysis.categories]
            if len(labels) <= 5:
                return cls.generate_donut_chart(labels, counts, analysis.label)
            return cls.generate_horizontal_bar_chart(labels, counts, analysis.label)
        if analysis.kind == KIND_NUMERIC and analysis.histogram:
            labels = [format_number(b.value) for b in analysis.histogram]
            counts = [b.count for b in analysis.histogram]
            return cls.generate_vertical_bar_chart(labels, counts, analysis.label)
        return None

    @classmethod
    def for_timeline(cls, timeline, title='Responses per day'):
        if not timeline:
            return None
        return cls.generate_timeline_chart(
            [b.label for b in timeline], [b.count for b in timeline], title
        )
