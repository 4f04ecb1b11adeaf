import asyncio
import os
import sys

# Add project root to sys.path
sys.path.append(os.getcwd())


async def check_backend(backend):
    print(f"[Check] Backend: {backend.url} ... ", end="")
    if await backend.health_check():
        print("OK")
        return True
    print("FAILED (unreachable or unhealthy)")
    return False


async def check_redis(url):
    from schema_gate.runtime.redis_client import create_redis, ping
    print(f"[Check] Redis: {url} ... ", end="")
    r = create_redis(url)
    try:
        ok = await ping(r)
    finally:
        await r.aclose()
    print("OK" if ok else "FAILED")
    return ok


def check_anon_key(key):
    print("[Check] SUPABASE_ANON_KEY ... ", end="")
    if not key:
        print("MISSING (Required for every backend call)")
        return False
    if key.count(".") == 2:
        print("OK (Format looks valid)")
        return True
    print("WARNING (Not a JWT?)")
    return True


async def check_code(backend, cfg, code):
    from schema_gate.bootstrap import create_validator
    print(f"[Check] Tenant code '{code}' ... ", end="")
    validator = create_validator(backend, cfg)
    status = await validator.confirm(code)
    print(f"{status.state.value.upper()}: {status.message}")
    return status.is_valid


async def main(code):
    print("=== SchemaGate Environment Verification ===\n")

    try:
        from schema_gate.core.config import GateSettings
        cfg = GateSettings()
        print(f"[Info] Loaded Config: Env={cfg.GATE_ENV}, URL={cfg.SUPABASE_URL}, Store={cfg.SESSION_STORE}, "
              f"Log={cfg.LOG_LEVEL}, Schemas={','.join(cfg.ALLOWED_SCHEMAS)}")
    except Exception as e:
        print(f"\n[FATAL] Configuration load failed: {e}")
        print("  -> Check your .env file format")
        return

    from schema_gate.bootstrap import configure_logging, create_backend
    from schema_gate.runtime.session_store import MemorySessionStore
    configure_logging(cfg, stream=sys.stderr)

    key_ok = check_anon_key(cfg.SUPABASE_ANON_KEY)
    redis_ok = True
    if cfg.SESSION_STORE == "redis":
        redis_ok = await check_redis(cfg.REDIS_URL)

    async with create_backend(cfg, session_store=MemorySessionStore()) as backend:
        backend_ok = await check_backend(backend)
        code_ok = await check_code(backend, cfg, code) if code else True

    from schema_gate.core.metrics import gate_metrics
    errors = gate_metrics.counters("backend_error:")
    if errors:
        print("\n[Info] Backend errors: " + ", ".join(f"{code} x{n}" for code, n in sorted(errors.items())))

    print("\n=== Summary ===")
    if key_ok and redis_ok and backend_ok and code_ok:
        print("[OK] Environment Ready.")
    else:
        print("[WARN] Environment Issues Found")
        if not key_ok:
            print("   - Please set SUPABASE_ANON_KEY in .env")
        if not redis_ok:
            print("   - Ensure Redis is running and REDIS_URL is correct, or set SESSION_STORE=memory")
        if not backend_ok:
            print("   - Ensure SUPABASE_URL points at a reachable backend")
        if not code_ok:
            print(f"   - Tenant code '{code}' was rejected")


if __name__ == "__main__":
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else ""))
