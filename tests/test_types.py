"""Tests for offer types, construction and utilities."""

from dataclasses import replace

import pytest

from kettle_sdk.offers import (
    BYTES_ZERO,
    Collateral,
    Criteria,
    ItemType,
    Lien,
    LoanOffer,
    MarketOffer,
    MarketOfferTerms,
    OfferType,
    OfferWithSignature,
    Side,
    calculate_market_fee,
    calculate_net_market_amount,
    create_borrow_offer,
    create_loan_offer,
    create_market_offer,
    equal_addresses,
    format_bps,
    format_units,
    parse_uint,
)

from .fakes import (
    BORROWER,
    BUYER,
    COLLECTION,
    CURRENCY,
    DAY,
    ETH,
    LENDER,
    NOW,
    RECIPIENT,
    TOKEN_ID,
    make_collateral,
    make_lien,
    make_loan_offer,
    make_loan_terms,
    make_market_offer,
)


BASE_PARAMS = {
    "collection": COLLECTION,
    "identifier": TOKEN_ID,
    "currency": CURRENCY,
    "rate": 1000,
    "default_rate": 2000,
    "fee": 100,
    "recipient": RECIPIENT,
    "duration": 30 * DAY,
    "grace_period": 3 * DAY,
    "expiration": NOW + DAY,
}


class TestOfferTypes:
    """Tests for offer value types."""

    def test_addresses_are_checksummed(self):
        """Test that addresses are normalized to checksum form."""
        offer = make_loan_offer(lender=LENDER.lower())

        assert offer.lender == LENDER
        assert offer.maker == LENDER

    def test_invalid_address(self):
        """Test that an invalid address is rejected."""
        with pytest.raises(ValueError, match="collection"):
            make_collateral(collection="0x1234")

    def test_negative_amount(self):
        """Test that negative integers are rejected."""
        with pytest.raises(ValueError, match="identifier"):
            make_collateral(identifier=-1)

    def test_bool_is_not_an_integer(self):
        """Test that booleans are not accepted as uints."""
        with pytest.raises(ValueError):
            make_collateral(size=True)

    def test_loan_amount_ordering(self):
        """Test that min_amount <= max_amount <= total_amount is enforced."""
        with pytest.raises(ValueError, match="Invalid loan amounts"):
            make_loan_terms(total_amount=1 * ETH, max_amount=2 * ETH, min_amount=1 * ETH)

        with pytest.raises(ValueError, match="Invalid loan amounts"):
            make_loan_terms(total_amount=5 * ETH, max_amount=2 * ETH, min_amount=3 * ETH)

    def test_offers_are_immutable(self):
        """Test that offers cannot be modified."""
        offer = make_loan_offer()

        with pytest.raises(AttributeError):
            offer.salt = 5

    def test_ask_clears_loan_fields(self):
        """Test that an ask never carries a loan."""
        ask = MarketOffer(
            side=Side.ASK,
            maker=BORROWER,
            collateral=make_collateral(),
            terms=MarketOfferTerms(
                currency=CURRENCY,
                amount=ETH,
                with_loan=True,
                borrow_amount=ETH // 2,
                loan_offer_hash="0x" + "12" * 32,
            ),
            fee=make_loan_offer().fee,
            expiration=NOW,
            salt=1,
            nonce=0,
        )

        assert ask.terms.with_loan is False
        assert ask.terms.borrow_amount == 0
        assert ask.terms.loan_offer_hash == BYTES_ZERO

    def test_bid_keeps_loan_fields(self):
        """Test that a bid may carry a loan."""
        terms = MarketOfferTerms(
            currency=CURRENCY, amount=ETH, with_loan=True, borrow_amount=ETH // 2
        )
        bid = make_market_offer(Side.BID, BUYER)
        bid = replace(bid, terms=terms)

        assert bid.terms.with_loan is True
        assert bid.side == Side.BID

    def test_is_expired(self):
        """Test that an offer is valid through its expiration second."""
        offer = make_loan_offer(expiration=NOW)

        assert not offer.is_expired(NOW)
        assert offer.is_expired(NOW + 1)

    def test_offer_types(self):
        """Test the offer type tags."""
        assert make_loan_offer().offer_type == OfferType.LOAN_OFFER
        assert make_market_offer(Side.BID, BUYER).offer_type == OfferType.MARKET_OFFER


class TestMessages:
    """Tests for wire (EIP-712 message) conversion."""

    def test_from_message_parses_strings(self):
        """Test that decimal and hex strings are accepted from the wire."""
        offer = make_loan_offer()
        message = offer.to_message()
        message["salt"] = str(offer.salt)
        message["terms"]["maxAmount"] = hex(offer.terms.max_amount)

        assert LoanOffer.from_message(message) == offer

    def test_lien_message(self):
        """Test lien conversion with the off-chain lender field."""
        lien = make_lien()

        assert Lien.from_message(lien.to_message()) == lien
        assert "lender" not in make_lien(lender=None).to_message()

    def test_offer_with_signature(self):
        """Test serialization of a signed offer."""
        signed = OfferWithSignature(offer=make_market_offer(Side.ASK, BORROWER), signature="0x1234")
        data = signed.to_dict()

        assert data["type"] == int(OfferType.MARKET_OFFER)
        assert OfferWithSignature.from_dict(data) == signed

    @pytest.mark.parametrize(
        "wire,expected",
        [(True, True), (False, False), ("true", True), ("false", False), ("False", False)],
    )
    def test_with_loan_from_message(self, wire, expected):
        """Test that withLoan accepts bools and their string forms."""
        message = {"currency": CURRENCY, "amount": "1000", "withLoan": wire}

        assert MarketOfferTerms.from_message(message).with_loan is expected

    @pytest.mark.parametrize("wire", ["0", "1", "yes", "", 1, None])
    def test_with_loan_rejects_other_values(self, wire):
        """Test that withLoan values other than bools and true/false are rejected."""
        message = {"currency": CURRENCY, "amount": "1000", "withLoan": wire}

        with pytest.raises(ValueError, match="withLoan"):
            MarketOfferTerms.from_message(message)

    def test_parse_uint_rejects_floats(self):
        """Test that floats are never rounded into integers."""
        with pytest.raises(ValueError):
            parse_uint(1.5, "amount")
        with pytest.raises(ValueError):
            parse_uint("1.5", "amount")

        assert parse_uint("0x10", "amount") == 16


class TestCreateOffers:
    """Tests for offer construction from user input."""

    def test_loan_amount_sets_all_amounts(self):
        """Test that amount fills total, max and min."""
        offer = create_loan_offer(LENDER, {**BASE_PARAMS, "amount": 3 * ETH}, nonce=4)

        assert offer.terms.total_amount == 3 * ETH
        assert offer.terms.max_amount == 3 * ETH
        assert offer.terms.min_amount == 3 * ETH
        assert offer.nonce == 4
        assert offer.collateral.criteria == Criteria.SIMPLE
        assert offer.collateral.item_type == ItemType.ERC721
        assert offer.collateral.size == 1

    def test_loan_explicit_amounts(self):
        """Test explicit total/max/min amounts."""
        offer = create_loan_offer(
            LENDER,
            {**BASE_PARAMS, "total_amount": 10 * ETH, "max_amount": 4 * ETH, "min_amount": ETH},
            nonce=0,
            salt=7,
        )

        assert offer.terms.total_amount == 10 * ETH
        assert offer.terms.max_amount == 4 * ETH
        assert offer.terms.min_amount == ETH
        assert offer.salt == 7

    def test_loan_requires_amount(self):
        """Test that an amount is required."""
        with pytest.raises(ValueError, match="amount"):
            create_loan_offer(LENDER, BASE_PARAMS, nonce=0)

    def test_random_salts(self):
        """Test that new offers get distinct salts."""
        a = create_loan_offer(LENDER, {**BASE_PARAMS, "amount": ETH}, nonce=0)
        b = create_loan_offer(LENDER, {**BASE_PARAMS, "amount": ETH}, nonce=0)

        assert a.salt != b.salt

    def test_borrow_offer_is_simple(self):
        """Test that borrow offers always name a specific token."""
        offer = create_borrow_offer(
            BORROWER, {**BASE_PARAMS, "amount": ETH, "criteria": Criteria.PROOF}, nonce=0
        )

        assert offer.collateral.criteria == Criteria.SIMPLE
        assert offer.borrower == BORROWER

    def test_ask_ignores_loan_input(self):
        """Test that loan fields are dropped for asks."""
        params = {**BASE_PARAMS, "amount": ETH, "with_loan": True, "borrow_amount": ETH}
        ask = create_market_offer(Side.ASK, BORROWER, params, nonce=0)
        bid = create_market_offer(Side.BID, BUYER, params, nonce=0)

        assert ask.terms.with_loan is False
        assert ask.terms.borrow_amount == 0
        assert bid.terms.with_loan is True
        assert bid.terms.borrow_amount == ETH

    def test_erc1155_collateral(self):
        """Test ERC-1155 collateral with a size."""
        offer = create_loan_offer(
            LENDER,
            {**BASE_PARAMS, "amount": ETH, "item_type": ItemType.ERC1155, "size": 5},
            nonce=0,
        )

        assert offer.collateral == Collateral(
            collection=COLLECTION,
            criteria=Criteria.SIMPLE,
            item_type=ItemType.ERC1155,
            identifier=TOKEN_ID,
            size=5,
        )


class TestUtils:
    """Tests for utility functions."""

    def test_market_fee(self):
        """Test market fee calculation."""
        assert calculate_market_fee(10 * ETH, 250) == ETH // 4
        assert calculate_net_market_amount(10 * ETH, 250) == 10 * ETH - ETH // 4
        assert calculate_market_fee(3, 250) == 0

    def test_equal_addresses(self):
        """Test case-insensitive address comparison."""
        assert equal_addresses(LENDER, LENDER.lower())
        assert not equal_addresses(LENDER, BORROWER)
        assert not equal_addresses(LENDER, None)

    def test_format_units(self):
        """Test token amount formatting."""
        assert format_units(1_500_000_000_000_000_000) == "1.5"
        assert format_units(ETH) == "1"
        assert format_units(1_500_000, decimals=6) == "1.5"

    def test_format_bps(self):
        """Test basis point formatting."""
        assert format_bps(25) == "0.25%"
        assert format_bps(250) == "2.5%"
