"""
Referral Registry

Records who referred whom. Only addresses on the admin allow-list (the
pool registry, typically) may record referrals, and the first recorded
referrer for a referee is permanent.
"""

from typing import Dict, Optional, Set

from ..chain import Chain, Contract, to_address, to_optional_address, transaction
from ..exceptions import UnauthorizedError
from ..logger import get_logger

logger = get_logger(__name__)


class ReferralRegistry(Contract):

    EXTERNAL_FUNCTIONS = {
        "recordReferral(address,address)": "record_referral",
        "setAdminStatus(address,bool)": "set_admin_status",
        "transferOwnership(address)": "transfer_ownership",
    }

    def __init__(self, chain: Chain, deployer: str):
        super().__init__(chain, deployer)
        self.owner = self.deployer
        self._admins: Set[str] = set()
        self._referrers: Dict[str, str] = {}  # referee -> referrer
        self._referral_counts: Dict[str, int] = {}

    def is_admin(self, account: str) -> bool:
        return to_address(account) in self._admins

    def get_referrer(self, referee: str) -> Optional[str]:
        return self._referrers.get(to_address(referee))

    def referral_count(self, referrer: str) -> int:
        return self._referral_counts.get(to_address(referrer), 0)

    @transaction
    def record_referral(self, sender: str, referrer: Optional[str], referee: str) -> bool:
        """
        Store *referrer* for *referee* unless one is already recorded.

        Returns True when a new referral was stored.
        """
        sender = to_address(sender)
        if sender not in self._admins:
            raise UnauthorizedError(f"{sender} is not a referral admin")
        referee = to_address(referee)
        referrer = to_optional_address(referrer)
        if referrer is None or referrer == referee or referee in self._referrers:
            return False
        self._referrers[referee] = referrer
        self._referral_counts[referrer] = self._referral_counts.get(referrer, 0) + 1
        self._emit("ReferralRecorded", referee=referee, referrer=referrer)
        logger.debug(f"Referral: {referrer} → {referee}")
        return True

    @transaction
    def set_admin_status(self, sender: str, admin: str, status: bool) -> None:
        sender = to_address(sender)
        if sender != self.owner:
            raise UnauthorizedError("Ownable: caller is not the owner")
        admin = to_address(admin)
        if status:
            self._admins.add(admin)
        else:
            self._admins.discard(admin)
        logger.info(f"Referral admin {admin} status={status}")

    @transaction
    def transfer_ownership(self, sender: str, new_owner: str) -> None:
        if to_address(sender) != self.owner:
            raise UnauthorizedError("Ownable: caller is not the owner")
        self.owner = to_address(new_owner)
