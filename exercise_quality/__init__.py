"""
Exercise Quality Classifier
===========================

A machine learning pipeline that classifies how well a weight-lifting
exercise was performed (classes A-E) from wearable sensor readings.

Modules:
    - data_loader: CSV ingestion and schema validation
    - eda: Exploratory Data Analysis
    - preprocessing: Stratified partition and column cleaning
    - model: Random forest, gradient boosting and decision tree trainers
    - evaluation: Holdout metrics, confusion matrices and model selection
    - prediction: Predictions for the examinable table
"""

__version__ = "1.0.0"
__author__ = "Exercise Quality Team"
