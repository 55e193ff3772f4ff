#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Computer Lab 1: Principal Component Analysis by hand
# In-Class Version - Streamlined for teaching

# # Social Epidemiology: Quantitative Methods
# ## Computer Lab 1: Principal Component Analysis
# ---
#
# Social epidemiologists often work with many correlated indicators (deprivation
# items, wealth assets, neighbourhood ratings). PCA rewrites a set of correlated
# variables as a set of uncorrelated components, ordered by how much of the
# total variance each one captures.
#
# We practise on something lighter: a small dataset of beer ratings. We first
# derive PCA by hand (scale -> covariance -> eigenvectors -> eigenvalues), first
# with two variables and then with three, and finally check our work against
# the one-line built-in routine.

# ### 1.1 Load beers2.csv

# ---- code cell ----
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import sys
from pathlib import Path

# Add src directory to path
src_path = Path(__file__).resolve().parents[3] / 'src'
sys.path.insert(0, str(src_path))

from data_loaders import read_beers
from pca import (
    select_numeric, scale_columns, covariance_matrix, eigen_decompose,
    component_scores, explained_variance, prcomp,
)
from figures_static import plot_pair_with_eigenvectors, plot_scree, plot_biplot

data_path = src_path.parent / 'data'
beers = read_beers(data_path / 'beers2.csv')

print(f"✓ Loaded {len(beers)} beers with columns: {list(beers.columns)}")
beers.head()

# ### 1.2 Keep the numeric ratings and drop incomplete rows

# ---- code cell ----
ratings = select_numeric(beers).dropna()
print(ratings.describe().round(2))

# ## Section 2: PCA with two variables
# ---
#
# With two variables everything can be drawn on a flat page, which makes it
# the best place to build intuition.

# ### 2.1 Standardise the two variables
#
# The variables are measured on different scales, so we subtract each mean
# and divide by each standard deviation. After scaling every column has mean 0
# and variance 1.

# ---- code cell ----
two_vars = list(ratings.columns[:2])
z2 = scale_columns(ratings[two_vars])

print(z2.mean().round(10))
print(z2.std().round(10))

# ### 2.2 The covariance matrix, by hand
#
# cov = Z'Z / (n - 1). Because Z is standardised, the diagonal is 1 and the
# off-diagonal entry is simply the correlation between the two variables.

# ---- code cell ----
n = len(z2)
Z = z2.to_numpy()
cov_by_hand = Z.T @ Z / (n - 1)
print(cov_by_hand)

cov2 = covariance_matrix(z2)
print(cov2)
print("Same as pandas' correlation matrix:", np.allclose(cov2, ratings[two_vars].corr()))

# ### 2.3 Eigenvectors and eigenvalues
#
# An eigenvector v of the covariance matrix C satisfies C v = λ v: C only
# stretches v, it does not rotate it. The eigenvalue λ is the variance of the
# data along that direction.

# ---- code cell ----
values2, vectors2 = eigen_decompose(cov2)
print("Eigenvalues:\n", values2)
print("Eigenvectors (columns):\n", vectors2)

# Check the defining equation for PC1
v1 = vectors2['PC1'].to_numpy()
print("C v1      =", cov2.to_numpy() @ v1)
print("lambda v1 =", values2['PC1'] * v1)

# ### 2.4 How much variance does each component explain?
#
# For standardised data the eigenvalues add up to the number of variables (2).

# ---- code cell ----
print(explained_variance(values2))
print("Sum of eigenvalues:", values2.sum())

# ### 2.5 Plot the data with the eigenvectors
#
# Each arrow is an eigenvector stretched by the square root of its eigenvalue,
# that is, by the standard deviation of the data in that direction.

# ---- code cell ----
fig = plot_pair_with_eigenvectors(z2, two_vars[0], two_vars[1], values2, vectors2)
plt.show()

# ### 2.6 Component scores
#
# Projecting each beer onto the eigenvectors gives its scores. The scores
# are uncorrelated, and their variances equal the eigenvalues.

# ---- code cell ----
scores2 = component_scores(z2, vectors2)
print(scores2.head())
print(scores2.var().round(6))
print(scores2.corr().round(6))

# ## Section 3: PCA with three variables
# ---

# ### 3.1 Repeat every step with a third variable

# ---- code cell ----
three_vars = list(ratings.columns[:3])
z3 = scale_columns(ratings[three_vars])
cov3 = covariance_matrix(z3)
values3, vectors3 = eigen_decompose(cov3)

print(cov3.round(3))
print(explained_variance(values3).round(3))
print(vectors3.round(3))

# ### 3.2 Which variables load on which component?
#
# A loading is a variable's coefficient in the eigenvector. Large loadings
# with the same sign mean those variables move together along that component.

# ---- code cell ----
for pc in vectors3.columns:
    top = vectors3[pc].abs().sort_values(ascending=False).index[0]
    print(f"{pc}: explains {explained_variance(values3).loc[pc, 'proportion']:.1%}, "
          f"driven mostly by '{top}' ({vectors3.loc[top, pc]:+.2f})")

# ## Section 4: The built-in routine
# ---
#
# prcomp does the whole thing in one call (using a singular value
# decomposition rather than an explicit covariance matrix).

# ---- code cell ----
res3 = prcomp(ratings, columns=three_vars)
print(res3.summary().round(4))

print("sdev^2 equals our eigenvalues:", np.allclose(res3.sdev ** 2, values3))
print("rotation equals our eigenvectors:", np.allclose(res3.rotation, vectors3))
print("scores equal ours:", np.allclose(res3.x, component_scores(z3, vectors3)))

# ### 4.1 All the rating variables at once

# ---- code cell ----
res_all = prcomp(ratings)
print(res_all.summary().round(3))
print(res_all.rotation.round(3))

fig = plot_scree(res_all.eigenvalues)
plt.show()

fig = plot_biplot(res_all)
plt.show()

# ### 4.2 How many components should we keep?
#
# Two common rules of thumb: keep components whose eigenvalue exceeds 1
# (Kaiser), or keep enough to reach ~80% cumulative variance.

# ---- code cell ----
ev = explained_variance(res_all.eigenvalues)
kaiser = int((ev['eigenvalue'] > 1).sum())
eighty = int((ev['cumulative'] < 0.80).sum()) + 1
print(f"Kaiser rule keeps {kaiser} components; 80% rule keeps {eighty}.")
