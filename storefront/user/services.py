from fastapi import HTTPException, status
from storefront.schema.full_schema import Address, Favorite, Users
from storefront.user.models import AddressIn, AddressPatchIn, ProfilePatchIn
from storefront.user.repository import (count_addresses, first_address_id, get_favorite,
                                        get_user_address, get_user_by_id, list_addresses, mark_default_address,
                                        phone_taken, unset_default_addresses, favorite_product_pids)
from storefront.user.constants import logger

ADDRESS_FIELDS = ("recipient_name", "recipient_phone", "line1", "line2", "city", "state", "postal_code", "country")


def serialize_user(user: Users, referrals: int | None = None) -> dict:
    data = {
        "id": str(user.public_id),
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "role": user.role,
        "wallet": user.wallet,
        "referral_code": user.referral_code,
        "referred_by": user.referred_by,
        "created_at": user.created_at,
    }
    if referrals is not None:
        data["referrals"] = referrals
    return data


def serialize_address(address: Address) -> dict:
    data = {f: getattr(address, f) for f in ADDRESS_FIELDS}
    data["id"] = address.id
    data["is_default"] = address.is_default
    return data


def address_snapshot(address: Address) -> dict:
    return {f: getattr(address, f) for f in ADDRESS_FIELDS}


async def load_user_or_404(session, user_id: int) -> Users:
    user = await get_user_by_id(session, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


async def update_profile(session, user_id: int, payload: ProfilePatchIn) -> Users:
    user = await load_user_or_404(session, user_id)
    if payload.name is not None:
        user.name = payload.name.strip()
    if payload.phone is not None:
        phone = payload.phone.strip() or None
        if phone and await phone_taken(session, phone, user_id):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Phone number already in use")
        user.phone = phone
    await session.commit()
    await session.refresh(user)
    return user

# ---------------------------------------------------------------------------------------------------------
# exactly one default address per user, enforced on every write

async def add_address(session, user_id: int, payload: AddressIn) -> Address:
    first = await count_addresses(session, user_id) == 0
    address = Address(user_id=user_id, **payload.model_dump(exclude={"is_default"}), is_default=False)
    session.add(address)
    await session.flush()

    if payload.is_default or first:
        await unset_default_addresses(session, user_id, keep_id=address.id)
        address.is_default = True

    await session.commit()
    await session.refresh(address)
    logger.info("address.create.success", extra={"user_id": user_id, "address_id": address.id})
    return address


async def get_address_or_404(session, user_id: int, address_id: int) -> Address:
    address = await get_user_address(session, user_id, address_id)
    if not address:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Address not found")
    return address


async def patch_address(session, user_id: int, address_id: int, payload: AddressPatchIn) -> Address:
    address = await get_address_or_404(session, user_id, address_id)
    for field, value in payload.model_dump(exclude_unset=True, exclude={"is_default"}).items():
        if value is None and field not in ("line2", "state"):
            continue
        setattr(address, field, value)

    if payload.is_default is True:
        await unset_default_addresses(session, user_id, keep_id=address.id)
        address.is_default = True
    elif payload.is_default is False and address.is_default:
        # the default can only move by choosing another address
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail="Choose another default address instead")

    await session.commit()
    await session.refresh(address)
    return address


async def make_default_address(session, user_id: int, address_id: int) -> Address:
    address = await get_address_or_404(session, user_id, address_id)
    await unset_default_addresses(session, user_id, keep_id=address.id)
    address.is_default = True
    await session.commit()
    await session.refresh(address)
    return address


async def remove_address(session, user_id: int, address_id: int):
    address = await get_address_or_404(session, user_id, address_id)
    was_default = address.is_default
    await session.delete(address)
    await session.flush()

    if was_default:
        next_id = await first_address_id(session, user_id)
        if next_id is not None:
            await mark_default_address(session, next_id)

    await session.commit()
    logger.info("address.delete.success", extra={"user_id": user_id, "address_id": address_id})
    return await list_addresses(session, user_id)

# ---------------------------------------------------------------------------------------------------------

async def toggle_favorite(session, user_id: int, product_id: int) -> list[str]:
    existing = await get_favorite(session, user_id, product_id)
    if existing:
        await session.delete(existing)
    else:
        session.add(Favorite(user_id=user_id, product_id=product_id))
    await session.commit()
    return await favorite_product_pids(session, user_id)
