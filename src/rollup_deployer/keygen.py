"""Deterministic role key derivation for rollup-deployer library."""

import logging
from enum import Enum
from typing import Dict, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import ValidationError

from .exceptions import KeyDerivationError

# eth_account refuses mnemonic derivation until this is switched on
Account.enable_unaudited_hdwallet_features()

# Root of the HD path used only to validate seed material at construction
_CHECK_PATH = "m/44'/60'/0'/0/0"


class Domain(Enum):
    """
    Key domains; the value is the hardened account index of the HD path.

    Value ints define the derivation law and must never change.
    """

    SUPERCHAIN_OPERATOR = 1
    CHAIN_OPERATOR = 2


class Role(Enum):
    """
    Abstract responsibilities that map to a deterministic key.

    Each member is (domain, index); the index is the last HD path component.
    """

    DEPLOYER = (Domain.CHAIN_OPERATOR, 0)
    PROPOSER = (Domain.CHAIN_OPERATOR, 1)
    BATCHER = (Domain.CHAIN_OPERATOR, 2)
    CHALLENGER = (Domain.CHAIN_OPERATOR, 3)
    SEQUENCER_P2P = (Domain.CHAIN_OPERATOR, 4)
    L1_PROXY_ADMIN_OWNER = (Domain.CHAIN_OPERATOR, 5)
    L2_PROXY_ADMIN_OWNER = (Domain.CHAIN_OPERATOR, 6)
    BASE_FEE_VAULT_RECIPIENT = (Domain.CHAIN_OPERATOR, 7)
    L1_FEE_VAULT_RECIPIENT = (Domain.CHAIN_OPERATOR, 8)
    SEQUENCER_FEE_VAULT_RECIPIENT = (Domain.CHAIN_OPERATOR, 9)
    SYSTEM_CONFIG_OWNER = (Domain.CHAIN_OPERATOR, 10)

    SUPERCHAIN_DEPLOYER = (Domain.SUPERCHAIN_OPERATOR, 0)
    SUPERCHAIN_PROXY_ADMIN_OWNER = (Domain.SUPERCHAIN_OPERATOR, 1)
    SUPERCHAIN_CONFIG_GUARDIAN = (Domain.SUPERCHAIN_OPERATOR, 2)

    @property
    def domain(self) -> Domain:
        return self.value[0]

    @property
    def index(self) -> int:
        return self.value[1]

    def hd_path(self, chain_id: int) -> str:
        """
        Get the HD derivation path of this role on a chain.

        Args:
            chain_id: Chain the role is namespaced by

        Returns:
            Path of the form m/44'/60'/<domain>'/<chain_id>/<index>

        Raises:
            KeyDerivationError: If the chain id does not fit a non-hardened path index
        """
        if not 0 <= chain_id < 2**31:
            raise KeyDerivationError(f"chain id {chain_id} cannot be used as a derivation path index")
        return f"m/44'/60'/{self.domain.value}'/{chain_id}/{self.index}"


class MnemonicKeyGenerator:
    """Derives role keys from a single BIP-39 seed phrase."""

    def __init__(self, mnemonic: str, logger: Optional[logging.Logger] = None):
        """
        Initialize the key generator.

        Args:
            mnemonic: BIP-39 seed phrase
            logger: Logger to use (defaults to the module logger)

        Raises:
            KeyDerivationError: If the seed phrase is malformed
        """
        self._log = logger or logging.getLogger(__name__)
        self._mnemonic = " ".join(mnemonic.split())
        self._accounts: Dict[str, LocalAccount] = {}

        try:
            self._derive(_CHECK_PATH)
        except KeyDerivationError as e:
            raise KeyDerivationError("invalid seed phrase") from e

    def _derive(self, path: str) -> LocalAccount:
        if path not in self._accounts:
            try:
                self._accounts[path] = Account.from_mnemonic(self._mnemonic, account_path=path)
            except (ValidationError, ValueError) as e:
                raise KeyDerivationError(f"failed to derive key at {path}: {e}") from e
        return self._accounts[path]

    def address(self, role: Role, chain_id: int) -> str:
        """
        Get the checksummed address for a role on a chain.

        Raises:
            KeyDerivationError: If the role cannot be derived for this chain id
        """
        account = self._derive(role.hd_path(chain_id))
        self._log.debug("derived address for %s on chain %d: %s", role.name, chain_id, account.address)
        return account.address

    def private_key(self, role: Role, chain_id: int) -> bytes:
        """
        Get the 32-byte private key for a role on a chain.

        Raises:
            KeyDerivationError: If the role cannot be derived for this chain id
        """
        return bytes(self._derive(role.hd_path(chain_id)).key)
