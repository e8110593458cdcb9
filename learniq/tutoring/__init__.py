"""Tutoring content: hints, explanations, insights and study recommendations."""

from learniq.tutoring.client import TutorClient
from learniq.tutoring.service import TutoringService
