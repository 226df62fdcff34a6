"""Shared fixtures for the data package tests."""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

SERIES_MATRIX = "\n".join(
    [
        '!Series_title\t"Transcriptome of antibiotic resistant E. coli strains"',
        '!Series_geo_accession\t"GSE00001"',
        '!Sample_title\t"AMK resistant 1"\t"AMK resistant 2"\t"Parent 1"',
        '!Sample_geo_accession\t"GSM1"\t"GSM2"\t"GSM3"',
        '!Sample_characteristics_ch1\t"strain: MDS42"\t"strain: MDS42"\t"strain: MDS42"',
        '!Sample_characteristics_ch1\t"treatment: amikacin"\t"treatment: amikacin"\t'
        '"treatment: none"',
        "!series_matrix_table_begin",
        '"ID_REF"\t"GSM1"\t"GSM2"\t"GSM3"',
        '"b0001"\t1.5\t2.0\t3.0',
        '"b0002"\t0\tnull\t4',
        "!series_matrix_table_end",
        "",
    ]
)


@pytest.fixture
def series_matrix_text():
    return SERIES_MATRIX


@pytest.fixture
def samples_df():
    """Samples metadata as parsed from a series matrix, before annotation."""
    return pd.DataFrame(
        {
            "title": [
                "AMK resistant 1",
                "amk resistant 2",
                "CPZ resistant 1",
                "Parent 1",
                "Parent 2",
                "123 unknown",
            ]
        },
        index=pd.Index(["GSM1", "GSM2", "GSM3", "GSM4", "GSM5", "GSM6"], name="sample_id"),
    )


@pytest.fixture
def annot_df():
    return pd.DataFrame(
        {
            "resistance": [
                "resistant",
                "resistant",
                "resistant",
                "susceptible",
                "susceptible",
            ],
            "antibiotic": ["AMK", "AMK", "CPZ", "parent", "parent"],
        },
        index=pd.Index(["GSM1", "GSM2", "GSM3", "GSM4", "GSM5"], name="sample_id"),
    )


@pytest.fixture
def expr_df():
    rng = np.random.RandomState(8080)
    return pd.DataFrame(
        rng.gamma(shape=5.0, scale=20.0, size=(30, 5)),
        index=pd.Index([f"b{i:04d}" for i in range(30)], name="gene_id"),
        columns=["GSM1", "GSM2", "GSM3", "GSM4", "GSM5"],
    )
