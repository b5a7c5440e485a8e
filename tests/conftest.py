"""
Campaign Intel - Root Test Configuration

Pytest fixtures and configuration for all tests.
"""

import sys
from pathlib import Path

# Add src directory to Python path for imports
ROOT_DIR = Path(__file__).parent.parent
SRC_DIR = ROOT_DIR / 'src'
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import pytest
import boto3
from moto import mock_aws

# Test data directory
FIXTURES_DIR = Path(__file__).parent / 'fixtures'


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mock AWS credentials for testing"""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def dynamodb_resource(aws_credentials):
    """Mock DynamoDB resource"""
    with mock_aws():
        yield boto3.resource('dynamodb', region_name='us-east-1')
