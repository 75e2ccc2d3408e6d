# errors.py — failure taxonomy for directory, provisioning, driver and risk lookups.
# License: MIT
from __future__ import annotations


class TPNError(RuntimeError):
    fatal = True


class DirectoryUnavailable(TPNError):
    pass


class ValidatorNotFound(TPNError):
    def __init__(self, validator_id: str):
        super().__init__(f'Validator UID "{validator_id}" not found')
        self.validator_id = validator_id


class RegionFetchFailed(TPNError):
    fatal = False


class NoRegionInBucket(TPNError):
    fatal = False

    def __init__(self, bucket: str):
        super().__init__(f"No available countries in {bucket} region")
        self.bucket = bucket


class InvalidDuration(TPNError):
    pass


class InvalidRegionBucket(TPNError):
    pass


class ProvisioningFailed(TPNError):
    pass


class DriverActivationFailed(TPNError):
    pass


class DriverDeactivationFailed(TPNError):
    fatal = False


class RiskOracleUnavailable(TPNError):
    fatal = False


class SessionInterrupted(TPNError):
    pass
