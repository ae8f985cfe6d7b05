"""FPW Secrets Meta information.
   FPW Secrets gates a per-user encrypted secret store behind
   short-lived verification codes and authorized-request grants.
"""
__title__ = 'fpw_secrets'
__description__ = (
   'Verification codes, authorized-request grants and an encrypted '
   'per-user secret store with schema-gated domain events.'
)
__version__ = '0.3.0'
__license__ = 'Apache-2.0'
