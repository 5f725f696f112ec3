"""Django project package for the PatientCare backend."""
