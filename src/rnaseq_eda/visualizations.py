"""Visualization functions for exploratory RNA-seq analysis."""

from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from scipy.cluster.hierarchy import dendrogram, linkage
from scipy.spatial.distance import squareform

from rnaseq_eda.config import PlotConfig
from rnaseq_eda.statistics import gene_observations
from rnaseq_eda.tidy import COUNT_COLUMN, GENE_COLUMN, SAMPLE_COLUMN, MissingColumnError


def _require_columns(table: pd.DataFrame, columns: Sequence[Optional[str]], name: str):
    missing = [c for c in columns if c is not None and c not in table.columns]
    if missing:
        raise MissingColumnError(name, missing)


def create_count_distribution_plot(
    observations: pd.DataFrame,
    value_column: str = COUNT_COLUMN,
    color: Optional[str] = None,
    log_scale: bool = True,
    pseudocount: float = 1.0,
    title: str = "Count Distribution per Sample",
    plot_config: Optional[PlotConfig] = None
) -> go.Figure:
    """
    Create box plots of count distributions, one box per sample.

    Args:
        observations: Long observation table (gene, sample, count, ...)
        value_column: Column holding the values to plot
        color: Optional sample attribute used to colour boxes
        log_scale: Plot log10(value + pseudocount) instead of raw values
        pseudocount: Added before the log transform
        title: Plot title
        plot_config: Template and size settings (defaults if None)

    Returns:
        Plotly Figure object
    """
    plot_config = plot_config or PlotConfig()
    _require_columns(observations, [SAMPLE_COLUMN, value_column, color], "observation table")

    plot_data = observations.dropna(subset=[value_column]).copy()
    y_label = value_column
    if log_scale:
        plot_data['_plot_value'] = np.log10(plot_data[value_column] + pseudocount)
        y_label = f"log<sub>10</sub>({value_column} + {pseudocount:g})"
    else:
        plot_data['_plot_value'] = plot_data[value_column]

    fig = px.box(
        plot_data,
        x=SAMPLE_COLUMN,
        y='_plot_value',
        color=color,
        points=False,
        title=title,
        labels={'_plot_value': y_label, SAMPLE_COLUMN: 'Sample'}
    )

    fig.update_layout(
        template=plot_config.template,
        width=plot_config.width,
        height=plot_config.height,
        xaxis=dict(tickangle=-45)
    )

    return fig


def create_count_histogram(
    observations: pd.DataFrame,
    value_column: str = COUNT_COLUMN,
    facet: Optional[str] = SAMPLE_COLUMN,
    log_scale: bool = True,
    pseudocount: float = 1.0,
    nbins: int = 50,
    title: str = "Count Histogram",
    plot_config: Optional[PlotConfig] = None
) -> go.Figure:
    """Histogram of counts, faceted by sample (or another column)."""
    plot_config = plot_config or PlotConfig()
    _require_columns(observations, [value_column, facet], "observation table")

    plot_data = observations.dropna(subset=[value_column]).copy()
    if log_scale:
        plot_data[value_column] = np.log10(plot_data[value_column] + pseudocount)

    fig = px.histogram(
        plot_data,
        x=value_column,
        facet_col=facet,
        facet_col_wrap=4 if facet else 0,
        nbins=nbins,
        title=title
    )

    fig.update_layout(template=plot_config.template, showlegend=False)

    return fig


def create_gene_trend_plot(
    observations: pd.DataFrame,
    genes: Sequence[str],
    x: str,
    color: Optional[str] = None,
    value_column: str = COUNT_COLUMN,
    title: str = "Gene Expression",
    plot_config: Optional[PlotConfig] = None
) -> go.Figure:
    """
    Plot expression of selected genes against a sample attribute.

    Each gene gets its own facet; individual replicates are drawn as points
    and the per-group mean as a line.

    Args:
        observations: Denormalized observation table
        genes: Genes to plot
        x: Sample attribute for the x axis (e.g. timepoint)
        color: Optional sample attribute for colouring (e.g. strain)
        value_column: Column holding expression values
        title: Plot title
        plot_config: Template settings (defaults if None)

    Returns:
        Plotly Figure object
    """
    plot_config = plot_config or PlotConfig()
    _require_columns(observations, [GENE_COLUMN, value_column, x, color], "observation table")

    plot_data = gene_observations(observations, genes).dropna(subset=[x, value_column])

    group_cols = [GENE_COLUMN, x] + ([color] if color else [])
    means = (
        plot_data.groupby(group_cols, sort=True, observed=True)[value_column]
        .mean()
        .reset_index()
    )

    # both figures must lay out facets and colours identically
    category_orders = {GENE_COLUMN: list(pd.unique(plot_data[GENE_COLUMN]))}
    if color:
        category_orders[color] = sorted(plot_data[color].dropna().unique(), key=str)

    fig = px.scatter(
        plot_data,
        x=x,
        y=value_column,
        color=color,
        facet_col=GENE_COLUMN,
        facet_col_wrap=3,
        category_orders=category_orders,
        hover_data=[SAMPLE_COLUMN] if SAMPLE_COLUMN in plot_data.columns else None,
        title=title
    )

    line_fig = px.line(
        means,
        x=x,
        y=value_column,
        color=color,
        facet_col=GENE_COLUMN,
        facet_col_wrap=3,
        category_orders=category_orders
    )
    for trace in line_fig.data:
        trace.showlegend = False
        fig.add_trace(trace)

    fig.for_each_annotation(lambda a: a.update(text=a.text.split("=")[-1]))
    fig.update_yaxes(matches=None)
    fig.update_layout(template=plot_config.template)

    return fig


def create_correlation_heatmap(
    correlation: pd.DataFrame,
    cluster: bool = True,
    title: str = "Sample Correlation",
    plot_config: Optional[PlotConfig] = None
) -> go.Figure:
    """
    Create a heatmap of a sample x sample correlation matrix.

    Args:
        correlation: Square correlation matrix
        cluster: Reorder samples by average-linkage clustering on 1 - r
        title: Plot title
        plot_config: Template, size and colorscale settings (defaults if None)

    Returns:
        Plotly Figure object
    """
    plot_config = plot_config or PlotConfig()
    heatmap_data = correlation.copy()

    if cluster and len(heatmap_data) > 2:
        distance = np.nan_to_num(1 - heatmap_data.values, nan=1.0).clip(min=0)
        np.fill_diagonal(distance, 0)
        distance = (distance + distance.T) / 2
        sample_linkage = linkage(squareform(distance, checks=False), method='average')
        order = dendrogram(sample_linkage, no_plot=True)['leaves']
        heatmap_data = heatmap_data.iloc[order, order]

    fig = go.Figure(data=go.Heatmap(
        z=heatmap_data.values,
        x=[str(c) for c in heatmap_data.columns],
        y=[str(i) for i in heatmap_data.index],
        colorscale=plot_config.heatmap_colorscale,
        zmid=float(np.nanmean(heatmap_data.values)) if heatmap_data.size else 0,
        colorbar=dict(title="r"),
        hovertemplate='%{y} vs %{x}<br>r = %{z:.3f}<extra></extra>'
    ))

    fig.update_layout(
        title=title,
        template=plot_config.template,
        width=plot_config.width,
        height=plot_config.height,
        xaxis=dict(tickangle=-45),
        yaxis=dict(autorange='reversed')
    )

    return fig


def create_pca_plot(
    pca_result: Dict,
    color: Optional[str] = None,
    symbol: Optional[str] = None,
    x_component: str = "PC1",
    y_component: str = "PC2",
    title: str = "PCA Plot",
    plot_config: Optional[PlotConfig] = None
) -> go.Figure:
    """
    Create PCA plot of samples.

    Args:
        pca_result: Output of ``rnaseq_eda.pca.run_pca``
        color: Sample attribute for colouring points
        symbol: Sample attribute for marker symbols
        x_component: Component on the x axis
        y_component: Component on the y axis
        title: Plot title
        plot_config: Template and size settings (defaults if None)

    Returns:
        Plotly Figure object
    """
    plot_config = plot_config or PlotConfig()
    scores = pca_result['scores']
    _require_columns(scores, [x_component, y_component, color, symbol], "PCA scores")

    var_exp = pca_result['explained_variance'].set_index('component')['variance_ratio'] * 100

    fig = px.scatter(
        scores,
        x=x_component,
        y=y_component,
        color=color,
        symbol=symbol,
        text=SAMPLE_COLUMN,
        title=title,
        labels={
            x_component: f'{x_component} ({var_exp[x_component]:.1f}%)',
            y_component: f'{y_component} ({var_exp[y_component]:.1f}%)'
        }
    )

    fig.update_traces(
        marker=dict(size=12, line=dict(width=1, color='white')),
        textposition='top center'
    )

    fig.update_layout(
        template=plot_config.template,
        width=plot_config.width,
        height=plot_config.height,
        showlegend=True
    )

    return fig


def create_scree_plot(
    explained_variance: pd.DataFrame,
    title: str = "Variance Explained",
    plot_config: Optional[PlotConfig] = None
) -> go.Figure:
    """Bar chart of variance explained per component with the cumulative curve."""
    plot_config = plot_config or PlotConfig()
    percent = explained_variance['variance_ratio'] * 100
    cumulative = explained_variance['cumulative_ratio'] * 100

    fig = go.Figure()
    fig.add_trace(go.Bar(
        x=explained_variance['component'],
        y=percent,
        name='Component',
        marker_color='#3498DB'
    ))
    fig.add_trace(go.Scatter(
        x=explained_variance['component'],
        y=cumulative,
        mode='lines+markers',
        name='Cumulative',
        line=dict(color='#E74C3C')
    ))

    fig.update_layout(
        title=title,
        xaxis_title="Principal component",
        yaxis_title="Variance explained (%)",
        template=plot_config.template,
        width=plot_config.width,
        height=plot_config.height
    )

    return fig


def top_loading_genes(pca_result: Dict, component: str = "PC1", n: int = 10) -> List[str]:
    """Genes with the largest absolute loading on a component."""
    loadings = pca_result['loadings'][component]
    return loadings.abs().sort_values(ascending=False).head(n).index.tolist()
