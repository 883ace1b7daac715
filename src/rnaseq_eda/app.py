"""Main Dash application for exploring RNA-seq count data."""

import base64
import io
import logging
from typing import Optional

import dash
from dash import dcc, html, Input, Output, State
import dash_bootstrap_components as dbc
import pandas as pd

from rnaseq_eda.config import get_config
from rnaseq_eda.pca import PCAError, run_pca
from rnaseq_eda.statistics import (
    filter_low_counts,
    log_transform,
    sample_correlation,
    summarize_groups,
)
from rnaseq_eda.tidy import StructuralError, build_observation_table
from rnaseq_eda.validation import (
    clean_identifiers,
    validate_analysis_inputs,
    validate_count_matrix,
)
from rnaseq_eda.visualizations import (
    create_correlation_heatmap,
    create_count_distribution_plot,
    create_gene_trend_plot,
    create_pca_plot,
    create_scree_plot,
    top_loading_genes,
)


# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Initialize config
config = get_config()

# Initialize Dash app
app = dash.Dash(
    __name__,
    external_stylesheets=[dbc.themes.BOOTSTRAP],
    title=config.app_title,
    suppress_callback_exceptions=True  # download button lives in the results layout
)

# Store for session data
session_data = {}

UPLOAD_STYLE = {
    'width': '100%',
    'height': '60px',
    'lineHeight': '60px',
    'borderWidth': '2px',
    'borderStyle': 'dashed',
    'borderRadius': '5px',
    'textAlign': 'center',
    'margin': '10px 0'
}


def parse_upload(contents: str, filename: str, index_name: Optional[str] = None) -> pd.DataFrame:
    """Decode a dcc.Upload payload into a DataFrame indexed by its first column."""
    content_type, content_string = contents.split(',')
    decoded = base64.b64decode(content_string)

    if filename.endswith('.csv'):
        df = pd.read_csv(io.StringIO(decoded.decode('utf-8')), index_col=0)
    elif filename.endswith('.tsv') or filename.endswith('.txt'):
        df = pd.read_csv(io.StringIO(decoded.decode('utf-8')), sep='\t', index_col=0)
    elif filename.endswith(('.xlsx', '.xls')):
        df = pd.read_excel(io.BytesIO(decoded), index_col=0)
    else:
        raise ValueError(f"Unsupported file format: {filename}")

    return clean_identifiers(df, index_name=index_name)


def create_layout():
    """Create the main layout."""
    return dbc.Container([
        # Header
        dbc.Row([
            dbc.Col([
                html.H1(config.app_title, className="text-primary mb-2"),
                html.H4("Exploratory analysis of RNA-seq counts",
                        className="text-secondary mb-4"),
                html.Hr()
            ])
        ]),

        # Upload Section
        dbc.Row([
            dbc.Col([
                dbc.Card([
                    dbc.CardHeader(html.H5("1. Upload Data", className="mb-0")),
                    dbc.CardBody([
                        html.Label("Count Matrix:", className="fw-bold"),
                        dcc.Upload(
                            id='upload-counts',
                            children=html.Div(['Drag and Drop or ', html.A('Select Count Matrix File')]),
                            style=UPLOAD_STYLE,
                            multiple=False
                        ),
                        html.Div(id='counts-upload-status', className="mt-2"),

                        html.Hr(className="my-3"),

                        html.Label("Sample Information:", className="fw-bold mt-3"),
                        dcc.Upload(
                            id='upload-sample-info',
                            children=html.Div(['Drag and Drop or ', html.A('Select Sample Information File')]),
                            style=UPLOAD_STYLE,
                            multiple=False
                        ),
                        html.Div(id='sample-info-upload-status', className="mt-2")
                    ])
                ], className="mb-4")
            ], width=12)
        ]),

        # Parameters Section
        dbc.Row([
            dbc.Col([
                dbc.Card([
                    dbc.CardHeader(html.H5("2. Exploration Parameters", className="mb-0")),
                    dbc.CardBody([
                        dbc.Row([
                            dbc.Col([
                                html.Label("Colour by:", className="fw-bold"),
                                dcc.Dropdown(id='color-column-dropdown', disabled=True,
                                             placeholder="Sample attribute")
                            ], width=6),
                            dbc.Col([
                                html.Label("Trend x axis:", className="fw-bold"),
                                dcc.Dropdown(id='trend-column-dropdown', disabled=True,
                                             placeholder="Sample attribute (e.g. timepoint)")
                            ], width=6)
                        ]),

                        html.Hr(className="my-3"),

                        dbc.Row([
                            dbc.Col([
                                html.Label("Min Count:", className="fw-bold"),
                                dbc.Input(id='min-count-input', type='number',
                                          value=config.defaults.min_count, min=0, step=1)
                            ], width=4),
                            dbc.Col([
                                html.Label("Correlation:", className="fw-bold"),
                                dcc.Dropdown(
                                    id='correlation-method-dropdown',
                                    options=[{'label': m.title(), 'value': m}
                                             for m in ['pearson', 'spearman', 'kendall']],
                                    value=config.defaults.correlation_method,
                                    clearable=False
                                )
                            ], width=4),
                            dbc.Col([
                                html.Label("PCA Top Genes:", className="fw-bold"),
                                dbc.Input(id='pca-genes-input', type='number',
                                          value=config.defaults.pca_top_genes, min=2, step=50)
                            ], width=4)
                        ]),

                        dbc.Button(
                            "Explore",
                            id="run-analysis-btn",
                            color="primary",
                            size="lg",
                            className="w-100 mt-3",
                            disabled=True
                        ),

                        html.Div(id='analysis-status', className="mt-3")
                    ])
                ], className="mb-4")
            ], width=12)
        ]),

        # Results Section
        dbc.Row([
            dbc.Col([
                dcc.Loading(
                    id="loading-results",
                    type="default",
                    children=html.Div(id='results-container')
                )
            ])
        ]),

        dcc.Download(id="download-observations"),

        # Hidden divs for storing data
        html.Div(id='counts-data-store', style={'display': 'none'}),
        html.Div(id='sample-info-data-store', style={'display': 'none'})

    ], fluid=True, className="py-4")


app.layout = create_layout()


# Callbacks

@app.callback(
    [Output('counts-upload-status', 'children'),
     Output('counts-data-store', 'children')],
    Input('upload-counts', 'contents'),
    State('upload-counts', 'filename')
)
def upload_counts(contents, filename):
    """Handle count matrix upload."""
    if contents is None:
        return "", ""

    try:
        df = parse_upload(contents, filename)
        result, schema = validate_count_matrix(df)

        session_data['counts'] = df

        if result.valid:
            msg = dbc.Alert([
                html.Strong("✓ Count matrix uploaded successfully!"),
                html.Br(),
                f"Genes: {schema.n_genes:,} | Samples: {schema.n_samples}"
            ], color="success")
        else:
            msg = dbc.Alert([
                html.Strong("✗ Validation errors:"),
                html.Ul([html.Li(err) for err in result.errors])
            ], color="danger")

        if result.warnings:
            msg = html.Div([
                msg,
                dbc.Alert([
                    html.Strong("⚠ Warnings:"),
                    html.Ul([html.Li(w.message) for w in result.warnings])
                ], color="warning")
            ])

        return msg, "loaded" if result.valid else ""

    except Exception as e:
        logger.error(f"Error uploading counts: {e}")
        return dbc.Alert(f"Error: {str(e)}", color="danger"), ""


@app.callback(
    [Output('sample-info-upload-status', 'children'),
     Output('sample-info-data-store', 'children'),
     Output('color-column-dropdown', 'options'),
     Output('color-column-dropdown', 'disabled'),
     Output('trend-column-dropdown', 'options'),
     Output('trend-column-dropdown', 'disabled')],
    Input('upload-sample-info', 'contents'),
    State('upload-sample-info', 'filename')
)
def upload_sample_info(contents, filename):
    """Handle sample information upload."""
    if contents is None:
        return "", "", [], True, [], True

    try:
        df = parse_upload(contents, filename, index_name=config.defaults.sample_key)

        session_data['sample_info'] = df

        options = [{'label': col, 'value': col} for col in df.columns]

        msg = dbc.Alert([
            html.Strong("✓ Sample information uploaded successfully!"),
            html.Br(),
            f"Samples: {len(df)} | Columns: {len(df.columns)}"
        ], color="success")

        return msg, "loaded", options, False, options, False

    except Exception as e:
        logger.error(f"Error uploading sample information: {e}")
        return dbc.Alert(f"Error: {str(e)}", color="danger"), "", [], True, [], True


@app.callback(
    Output('run-analysis-btn', 'disabled'),
    Input('counts-data-store', 'children'),
    Input('sample-info-data-store', 'children')
)
def update_run_button(counts_loaded, sample_info_loaded):
    """Enable the run button once both inputs are loaded."""
    return not (counts_loaded and sample_info_loaded)


@app.callback(
    [Output('analysis-status', 'children'),
     Output('results-container', 'children')],
    Input('run-analysis-btn', 'n_clicks'),
    State('color-column-dropdown', 'value'),
    State('trend-column-dropdown', 'value'),
    State('min-count-input', 'value'),
    State('correlation-method-dropdown', 'value'),
    State('pca-genes-input', 'value')
)
def run_analysis(n_clicks, color_col, trend_col, min_count, method, pca_genes):
    """Build the tidy table and all exploratory figures."""
    if not n_clicks:
        return "", ""

    try:
        counts = session_data.get('counts')
        sample_info = session_data.get('sample_info')

        if counts is None or sample_info is None:
            return dbc.Alert("Please upload both count matrix and sample information", color="danger"), ""

        sample_key = config.defaults.sample_key
        attributes = list(dict.fromkeys(c for c in [color_col, trend_col] if c))

        validation = validate_analysis_inputs(counts, sample_info, sample_key=sample_key,
                                              attribute_columns=attributes)
        if not validation.valid:
            return dbc.Alert([
                html.Strong("Validation failed:"),
                html.Ul([html.Li(err) for err in validation.errors])
            ], color="danger"), ""

        observations = build_observation_table(counts, sample_info, sample_key=sample_key,
                                               how=config.defaults.join_how)
        session_data['observations'] = observations

        filtered = filter_low_counts(
            counts,
            min_count=min_count if min_count is not None else config.defaults.min_count,
            min_samples=config.defaults.min_samples
        )
        log_counts = log_transform(filtered, pseudocount=config.defaults.pseudocount,
                                   base=config.defaults.log_base)

        correlation = sample_correlation(log_counts, method=method or config.defaults.correlation_method)

        pca_result = run_pca(
            log_counts,
            sample_info=sample_info,
            sample_key=sample_key,
            top_n_genes=int(pca_genes) if pca_genes else None,
            scale=config.defaults.pca_scale
        )

        distribution_fig = create_count_distribution_plot(observations, color=color_col,
                                                          plot_config=config.plots)
        correlation_fig = create_correlation_heatmap(correlation,
                                                     title=f"Sample Correlation ({method})",
                                                     plot_config=config.plots)
        pca_fig = create_pca_plot(pca_result, color=color_col, plot_config=config.plots)
        scree_fig = create_scree_plot(pca_result['explained_variance'], plot_config=config.plots)

        tabs = [
            dbc.Tab(label="Distributions", children=[dcc.Graph(figure=distribution_fig)]),
            dbc.Tab(label="Correlation", children=[dcc.Graph(figure=correlation_fig)]),
            dbc.Tab(label="PCA", children=[dcc.Graph(figure=pca_fig), dcc.Graph(figure=scree_fig)])
        ]

        if trend_col:
            genes = top_loading_genes(pca_result, "PC1", n=6)
            trend_fig = create_gene_trend_plot(observations, genes, x=trend_col, color=color_col,
                                               title="Top PC1 genes", plot_config=config.plots)
            tabs.append(dbc.Tab(label="Gene Trends", children=[dcc.Graph(figure=trend_fig)]))

        if attributes:
            summary = summarize_groups(observations, ['gene'] + attributes)
            tabs.append(dbc.Tab(label="Group Summary", children=[
                dbc.Table.from_dataframe(
                    summary.head(100).round(3),
                    striped=True,
                    bordered=True,
                    hover=True,
                    size='sm',
                    className="mt-3"
                )
            ]))

        results_layout = html.Div([
            dbc.Alert([
                html.H5("✓ Exploration Complete!", className="alert-heading"),
                html.Hr(),
                html.P(f"Observations: {len(observations):,} | Genes after filtering: {len(filtered):,}")
            ], color="success"),
            dbc.Tabs(tabs),
            dbc.Button(
                "Download Tidy Table (CSV)",
                id="download-observations-btn",
                color="primary",
                className="mt-3"
            )
        ])

        status = dbc.Alert("Exploration completed successfully!", color="success")

        return status, results_layout

    except (StructuralError, PCAError) as e:
        logger.error(f"Data structure error: {e}")
        return dbc.Alert(f"Data Error: {str(e)}", color="danger"), ""
    except Exception as e:
        logger.error(f"Analysis error: {e}", exc_info=True)
        return dbc.Alert(f"Error: {str(e)}", color="danger"), ""


@app.callback(
    Output("download-observations", "data"),
    Input("download-observations-btn", "n_clicks"),
    prevent_initial_call=True
)
def download_observations(n_clicks):
    """Download the denormalized observation table as CSV."""
    if n_clicks and 'observations' in session_data:
        return dcc.send_data_frame(
            session_data['observations'].to_csv,
            "observations.csv",
            index=False
        )


def main():
    """Run the Dash application."""
    app.run(
        debug=config.debug,
        host=config.host,
        port=config.port
    )


if __name__ == '__main__':
    main()
