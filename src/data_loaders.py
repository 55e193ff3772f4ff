# src/data_loaders.py
import os
import yaml
import pyreadr
import pandas as pd


def return_default_config():
    """
    Returns the default configuration dictionary
    """
    return {
        "paths": {
            "data_dir": "./data",
            "results_dir": "./results",
            "figures_dir": "./figures",
            "beers_csv": "./data/beers2.csv",
            "survey_file": "./data/tz.dta",
            "recoded_csv": "./data/tz2.csv",
        },
        "diagnostics": {
            "print_tables": True,
        },
        "pca": {
            "columns": None,          # None -> every numeric column in beers2.csv
            "two_var": None,          # None -> first two selected columns
            "three_var": None,        # None -> first three selected columns
            "center": True, "scale": True, "dropna": True,
        },
        "survey": {
            "convert_categoricals": True,
            "outcome": "hiv",
            "exposure": "female",
            "strata": ["urban"],
            "age": "age",
            "age_breaks": [15, 20, 25, 30, 35, 40, 45, 50],
            "conf": 0.95,
        },
        "recodes": {
            "hiv":    {"type": "binary", "source": "hiv03", "positive": ["hiv positive"], "negative": ["hiv negative"]},
            "female": {"type": "binary", "source": "sex", "positive": ["female"], "negative": ["male"]},
        },
        "regression": {
            "crude": ["female"],
            "adjusted": ["female", "age", "urban"],
            "categorical": ["urban"],
            "reference": {},
            "max_iter": 25, "tol": 1e-8,
        },
        "figures": {"enabled": True, "dpi": 150, "format": "pdf"},
        "filenames": {
            "pca_summary": "prcomp_summary.csv",
            "pca_rotation": "prcomp_rotation.csv",
            "pca_scores": "prcomp_scores.csv",
            "eigen": "eigen.csv",
            "frequency": "frequency.csv",
            "prevalence": "prevalence.csv",
            "stratified": "stratified_prevalence.csv",
            "mantel_haenszel": "mantel_haenszel.csv",
            "logit": "logit.csv",
        },
    }

def _resolve(ROOT_DIR, p):
    """
    Resolve path p relative to ROOT_DIR if not absolute.
    """
    return os.path.abspath(os.path.join(ROOT_DIR, p))

def _deep_merge(dst, src):
    """
    Recursively merge src into dst
    """
    for k, v in src.items():
        if isinstance(v, dict) and isinstance(dst.get(k), dict):
            _deep_merge(dst[k], v)
        else:
            dst[k] = v

def _load_config(ROOT_DIR: str, path: str):
    """
    Load YAML config if present; otherwise use defaults for both config and paths.
    Returns (cfg, PATHS)
    """
    cfg = return_default_config()
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as fh:
            user = yaml.safe_load(fh) or {}
        if not isinstance(user, dict):
            raise ValueError(f"Config file {path} must contain a mapping at top level.")
        _deep_merge(cfg, user)
    else:
        print(f"[config] No config file at {path}; using built-in defaults.")

    PATHS = {
        key: _resolve(ROOT_DIR, cfg["paths"][key])
        for key in ("data_dir", "results_dir", "figures_dir",
                    "beers_csv", "survey_file", "recoded_csv")
    }
    return cfg, PATHS

# ------------------------------- readers -------------------------------------

def read_beers(file_path: str) -> pd.DataFrame:
    """
    Read the beer-ratings CSV (one row per beer).
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"File not found: {file_path}")
    return pd.read_csv(file_path)

def read_rds_file(file_path: str) -> pd.DataFrame:
    """
    Reads an RDS file and returns its contents as a pandas DataFrame.
    """
    try:
        result = pyreadr.read_r(file_path)
        return result[None]
    except Exception as e:
        raise RuntimeError(f"Failed to read {file_path}: {e}")

def read_survey(file_path: str, convert_categoricals: bool = True) -> pd.DataFrame:
    """
    Read the survey file (one row per respondent), dispatching on extension.

    - .dta : Stata, via pandas.read_stata. With `convert_categoricals` the
             value labels become pandas Categoricals, which is what the
             recoders match against.
    - .rds : R serialised frame, via pyreadr.
    - .csv : plain CSV (e.g. a previously written tz2.csv).
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"File not found: {file_path}")
    ext = os.path.splitext(file_path)[1].lower()
    if ext == ".dta":
        return pd.read_stata(file_path, convert_categoricals=convert_categoricals)
    if ext == ".rds":
        return read_rds_file(file_path)
    if ext == ".csv":
        return pd.read_csv(file_path)
    raise ValueError(f"Unsupported survey file type '{ext}' for {file_path}")

def load_all_data(data_dir, beers_name: str = "beers2.csv", survey_name: str = "tz.dta") -> dict:
    """
    Loads both lab datasets from the specified directory.
    """
    data_files = {
        'beers': os.path.join(data_dir, beers_name),
        'survey': os.path.join(data_dir, survey_name),
    }
    for name, path in data_files.items():
        if not os.path.exists(path):
            raise FileNotFoundError(f"File not found: {path}")
    return {
        'beers': read_beers(data_files['beers']),
        'survey': read_survey(data_files['survey']),
    }

# ------------------------------- writers -------------------------------------

def write_recoded(df: pd.DataFrame, file_path: str) -> str:
    """
    Write the recoded survey frame to CSV (no index) and return the path.
    """
    parent = os.path.dirname(os.path.abspath(file_path))
    os.makedirs(parent, exist_ok=True)
    df.to_csv(file_path, index=False)
    return file_path
