#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Computer Lab 2: Descriptive epidemiology and logistic regression
# In-Class Version - Streamlined for teaching

# # Social Epidemiology: Quantitative Methods
# ## Computer Lab 2: HIV in Tanzania
# ---
#
# We use a household survey from Tanzania with an HIV test result for each
# respondent. We will:
#   1. look at the raw variables,
#   2. recode the outcome and the exposure into 0/1 indicators,
#   3. compute prevalence overall and in subgroups,
#   4. stratify to look for confounding,
#   5. fit crude and adjusted logistic regressions,
#   6. save the recoded data as tz2.csv for next week.

# ### 1.1 Load the Stata file

# ---- code cell ----
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import sys
from pathlib import Path

# Add src directory to path
src_path = Path(__file__).resolve().parents[3] / 'src'
sys.path.insert(0, str(src_path))

from data_loaders import read_survey, write_recoded
from descriptive import (
    summarize_numeric, frequency_table, cross_tab, recode_binary, recode_age_groups,
    prevalence, stratified_prevalence, two_by_two, odds_ratio, prevalence_ratio,
    mantel_haenszel, chisq_test,
)
from regression import fit_logistic, likelihood_ratio_test
from figures_static import plot_prevalence_bars, plot_odds_ratios

data_path = src_path.parent / 'data'
tz = read_survey(data_path / 'tz.dta')

print(f"✓ Loaded {len(tz):,} respondents, {tz.shape[1]} variables")
tz.head()

# ### 1.2 Describe the raw variables
#
# Stata value labels arrive as pandas categories, so frequency tables show
# the labels rather than numeric codes. Missing values are kept in the table
# on purpose: always check how much is missing before analysing.

# ---- code cell ----
print(frequency_table(tz, 'hiv03'))
print(frequency_table(tz, 'sex'))
print(frequency_table(tz, 'urban'))
print(summarize_numeric(tz, ['age']))

# ## Section 2: Recoding
# ---

# ### 2.1 Outcome: HIV positive (1) vs negative (0)
#
# Anything that is not a valid test result (indeterminate, not tested) should
# become missing, not 'negative'. Listing both categories explicitly does that.

# ---- code cell ----
tz['hiv'] = recode_binary(tz['hiv03'], positive=['hiv positive'], negative=['hiv negative'])
print(cross_tab(tz, 'hiv03', 'hiv', margins=True))

# ### 2.2 Exposure: female (1) vs male (0)

# ---- code cell ----
tz['female'] = recode_binary(tz['sex'], positive=['female'], negative=['male'])
print(frequency_table(tz, 'female'))

# ### 2.3 Age groups (for tables only)

# ---- code cell ----
tz['agegrp'] = recode_age_groups(tz['age'], breaks=[15, 20, 25, 30, 35, 40, 45, 50])
print(frequency_table(tz, 'agegrp'))

# ## Section 3: Prevalence
# ---

# ### 3.1 Overall prevalence with a 95% confidence interval

# ---- code cell ----
print(prevalence(tz, 'hiv').round(4))

# ### 3.2 Prevalence by sex, by residence and by age group

# ---- code cell ----
prev_sex = prevalence(tz, 'hiv', by='female')
print(prev_sex.round(4))
print(prevalence(tz, 'hiv', by='urban').round(4))
print(prevalence(tz, 'hiv', by='agegrp').round(4))

fig = plot_prevalence_bars(prevalence(tz, 'hiv', by='agegrp'), x='agegrp')
plt.show()

# ### 3.3 Is the difference by sex more than chance?

# ---- code cell ----
chi = chisq_test(tz, 'female', 'hiv')
print(f"X-squared = {chi.statistic:.3f}, df = {chi.df}, p-value = {chi.p_value:.4g}")
print(chi.expected.round(1))

# ### 3.4 The 2x2 table, the odds ratio and the prevalence ratio
#
# For a cross-sectional survey the prevalence ratio is the more natural
# measure; the odds ratio is what logistic regression will give us, and it
# approximates the prevalence ratio only when the outcome is rare.

# ---- code cell ----
t = two_by_two(tz, 'hiv', 'female')
print(t.as_frame())
print(odds_ratio(t).round(3))
print(prevalence_ratio(t).round(3))

# ## Section 4: Stratification and confounding
# ---
#
# Urban residence is associated with HIV, and women and men may differ in
# where they live (for instance through migration for work). If residence is
# related to both sex and HIV it may confound the sex-HIV association.

# ---- code cell ----
strat = stratified_prevalence(tz, 'hiv', 'female', 'urban')
print(strat.round(4))

fig = plot_prevalence_bars(strat, x='urban', hue='female')
plt.show()

# The change is measured from crude to adjusted: 100 * (OR_MH - OR_crude) / OR_crude.
# A change of more than 10% in either direction suggests confounding.
mh = mantel_haenszel(tz, 'hiv', 'female', 'urban')
print(mh.to_frame().round(3))
print(f"Crude -> adjusted change: {mh.pct_change:+.1f}%  (confounding by residence? {mh.confounded()})")

# ## Section 5: Logistic regression
# ---

# ### 5.1 Crude model: hiv ~ female

# ---- code cell ----
cc = tz.dropna(subset=['hiv', 'female', 'age', 'urban'])

m1 = fit_logistic(cc, 'hiv', ['female'])
print(m1.summary().round(4))
print(m1.odds_ratios().round(3))

# The crude odds ratio from the model equals the 2x2 odds ratio (on the same rows).
print(odds_ratio(two_by_two(cc, 'hiv', 'female'))['OR'], np.exp(m1.params['female']))

# ### 5.2 Adjusted model: hiv ~ female + age + urban

# ---- code cell ----
m2 = fit_logistic(cc, 'hiv', ['female', 'age', 'urban'], categorical=['urban'])
print(m2.summary().round(4))
print(m2.odds_ratios().round(3))

fig = plot_odds_ratios(m2.odds_ratios())
plt.show()

# ### 5.3 Does adding age and residence improve the model?

# ---- code cell ----
print(f"AIC crude = {m1.aic:.1f}, AIC adjusted = {m2.aic:.1f}")
print(likelihood_ratio_test(m1, m2))

# ## Section 6: Save the recoded data
# ---
#
# Only the two recoded indicators are new columns we want to keep; the age
# groups were for display.

# ---- code cell ----
tz2 = tz.drop(columns=['agegrp'])
write_recoded(tz2, data_path / 'tz2.csv')
print(f"✓ Saved {len(tz2):,} rows to {data_path / 'tz2.csv'}")
