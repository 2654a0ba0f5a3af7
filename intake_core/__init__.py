"""
Referral Intake Core

Configuration, logging, agent execution framework and shared collaborators
for the referral intake service.
"""
