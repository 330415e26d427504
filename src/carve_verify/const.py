ERRORS = {
  "E_LAYOUT_MISSING": "Required file or directory missing",
  "E_RECEIPT_JSON": "Receipt JSON invalid",
  "E_SIG_INVALID": "Receipt signature invalid",
  "E_HANDLE_MISMATCH": "Stored code does not derive to the receipt handle",
  "E_CODE_HASH": "Stored code hash does not match receipt",
  "E_EMPTY_ARTIFACT": "No code stored at handle",
  "E_NOT_CARVED": "Stored code does not derive to handle",
  "E_POLICY_TRUST": "Publisher key not trusted",
}
