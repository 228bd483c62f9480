"""
Salesforce Connection Module

Opens the Simple Salesforce connection the audit service works with. Two ways
are supported:
    - An existing session (SALESFORCE_INSTANCE_URL + SALESFORCE_ACCESS_TOKEN),
      e.g. when the token is minted by a sidecar
    - An SFDX authentication URL (SALESFORCE_AUTH_URL) exchanged for a session
      with the Salesforce CLI (sf)

Functions:
    - get_salesforce_connection: Picks the method from the environment
    - get_salesforce_connection_url: Logs in with an SFDX URL through the CLI

Requirements:
    - Salesforce CLI (sf) v2.24.4 or newer for the SFDX URL method
"""
import json
import os
import shutil
import subprocess
import sys
import tempfile

from simple_salesforce import Salesforce

from orgcheck.logger import logger

DEFAULT_API_VERSION = os.getenv('SALESFORCE_API_VERSION', '60.0')


def _get_sf_command():
    """Return the path of the Salesforce CLI, sf.cmd first on Windows."""
    if sys.platform == 'win32':
        sf_path = shutil.which('sf.cmd') or shutil.which('sf')
    else:
        sf_path = shutil.which('sf')
    if not sf_path:
        raise FileNotFoundError("Salesforce CLI (sf) not found. Please ensure it is installed and in your PATH.")
    return sf_path


def _run_sf(sf_cmd, *args):
    return subprocess.run([sf_cmd, *args], check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE)


def _domain_of(instance_url):
    return 'test' if 'sandbox' in instance_url else 'login'


def get_salesforce_connection_url(url):
    """
    Log into an org with an SFDX authentication URL and open a connection on the resulting session.

    Args:
        url: SFDX authentication URL

    Returns:
        Salesforce: Connection using the org's API version

    Raises:
        ValueError: If URL is None or empty
        subprocess.CalledProcessError: If a Salesforce CLI command fails
        KeyError: If expected data is missing from CLI output
    """
    if not url:
        raise ValueError("SFDX authentication URL is required but was not provided. "
                         "Ensure SALESFORCE_AUTH_URL is set.")

    temp_file = None
    try:
        sf_cmd = _get_sf_command()
        with tempfile.NamedTemporaryFile(mode='w', suffix='.txt', delete=False) as f:
            f.write(url)
            temp_file = f.name

        _run_sf(sf_cmd, 'org', 'login', 'sfdx-url', '--set-default', '--sfdx-url-file', temp_file)
        display = _run_sf(sf_cmd, 'org', 'display', '--json')
        org = json.loads(display.stdout.decode('utf-8'))['result']

        logger.info("Logged into %s (API version %s)", org['instanceUrl'], org['apiVersion'])
        return Salesforce(instance_url=org['instanceUrl'], session_id=org['accessToken'],
                          domain=_domain_of(org['instanceUrl']), version=org['apiVersion'])

    except subprocess.CalledProcessError as e:
        logger.error("Error logging into Salesforce: %s", e)
        logger.error("CLI stderr: %s", e.stderr.decode('utf-8') if e.stderr else 'No stderr output')
        logger.error("CLI stdout: %s", e.stdout.decode('utf-8') if e.stdout else 'No stdout output')
        raise
    except KeyError as e:
        logger.error("Missing expected key in Salesforce CLI output: %s", e)
        raise
    finally:
        if temp_file and os.path.exists(temp_file):
            os.unlink(temp_file)


def get_salesforce_connection():
    """
    Open a connection from the environment: an existing session when
    SALESFORCE_INSTANCE_URL and SALESFORCE_ACCESS_TOKEN are set, the SFDX URL otherwise.
    """
    instance_url = os.getenv('SALESFORCE_INSTANCE_URL')
    access_token = os.getenv('SALESFORCE_ACCESS_TOKEN')
    if instance_url and access_token:
        logger.info("Using the existing session on %s", instance_url)
        return Salesforce(instance_url=instance_url, session_id=access_token,
                          domain=_domain_of(instance_url), version=DEFAULT_API_VERSION)
    return get_salesforce_connection_url(os.getenv('SALESFORCE_AUTH_URL'))
