import os

# Plots are written to files only
os.environ.setdefault("MPLBACKEND", "Agg")
