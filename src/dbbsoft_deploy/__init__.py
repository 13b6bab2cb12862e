"""Declarative deployment of the DbbSoft demo service to Elastic Beanstalk."""
