from typing import Optional
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "zkVault"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Deployment
    PORT: int = 8000

    # Vault parameters (collateral in wei, ratio in percent)
    UNIT_DEPOSIT: int = 10**18
    COLLATERAL_RATIO: int = 150
    MERKLE_TREE_HEIGHT: int = 20
    ROOT_HISTORY_SIZE: int = 30
    HASHER: str = "keccak"  # "keccak" | "sha256"

    # Oracle answers carry 8 decimals; the vault works at 18
    PRICE_DECIMALS_RESCALE: int = 10**10
    MOCK_PRICE: int = 2000 * 10**8

    # Privileged identity for set_price_source / set_ratio
    ADMIN_ADDRESS: str = "0x0000000000000000000000000000000000000001"

    # Account sessions (withdraw burns from the session's account)
    SECRET_KEY: str = "zkvault-dev-secret-change-in-production"
    SESSION_TOKEN_TTL_MINUTES: int = 15
    SESSION_CHALLENGE_WINDOW_SECONDS: int = 300

    # Web3 / Chainlink AggregatorV3 feed
    WEB3_PROVIDER_URL: str = "http://127.0.0.1:8545"
    PRICE_FEED_ADDRESS: str = ""

    # Groth16 verification (snarkjs)
    VERIFICATION_KEY_PATH: str = "circuits/build/verification_key.json"
    SNARKJS_COMMAND: str = "npx snarkjs"
    VERIFIER_TIMEOUT_SECONDS: Optional[float] = 60.0

    class Config:
        case_sensitive = True
        env_file = ".env"

settings = Settings()
