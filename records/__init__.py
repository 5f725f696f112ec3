"""Patient records application for the PatientCare backend.

This package holds the models, access policy, audit trail, services,
serializers and views behind the ``/api/v1`` patient API.
"""
